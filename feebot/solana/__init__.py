"""
Solana integration for the fee engine.

This package contains modules for interacting with the Solana blockchain:
account layouts, the ledger client, priority fees, token and bonding curve
instructions, wallet loading and transaction submission.
"""
