"""The four destinations of claimed fees."""

from feebot.strategies.base import BaseStrategy
from feebot.strategies.volume import VolumeStrategy
from feebot.strategies.buyback import BuybackStrategy
from feebot.strategies.airdrop import AirdropStrategy
from feebot.strategies.treasury import TreasuryStrategy
