"""
Creator fee discovery and settlement for pump.fun tokens.

Claims accrued creator fees from the bonding curve and splits them across
volume trades, buyback and burn, holder airdrops and the treasury.
"""

__version__ = "0.1.0"
