"""
Creator fee claims through the Pump Portal local-transaction API.

The API returns a serialized, unsigned versioned transaction that collects
the creator fees; it is signed locally and sent through the
TransactionSubmitter like any other transaction.
"""

import asyncio
from typing import Optional, Protocol

import requests
from loguru import logger
from solders.keypair import Keypair

from feebot.config import PUMP_PORTAL_API_URL
from feebot.errors import ClaimError, NetworkError
from feebot.solana.tx_submitter import TransactionSubmitter

DEFAULT_TIMEOUT = 30


class NothingToClaim(Exception):
    """The API reported that there are no fees to collect."""
    pass


class FeeClaimer(Protocol):
    """Anything that can collect the creator's accrued fees."""

    async def claim(self) -> Optional[str]:
        """Signature of the claim transaction, or None if there was nothing to claim."""
        ...


class PumpPortalClaimer:
    """
    Collects creator fees with a transaction built by Pump Portal.
    """

    def __init__(self,
                 creator: Keypair,
                 submitter: TransactionSubmitter,
                 priority_fee: float = 0.0001,
                 api_url: str = PUMP_PORTAL_API_URL,
                 timeout: int = DEFAULT_TIMEOUT):
        """
        Initialize the claimer.

        Args:
            creator: Creator keypair; signs and receives the fees
            submitter: TransactionSubmitter used to send the claim
            priority_fee: Priority fee in SOL requested from the API
            api_url: Local-transaction endpoint
            timeout: Request timeout in seconds
        """
        self.creator = creator
        self.submitter = submitter
        self.priority_fee = priority_fee
        self.api_url = api_url
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': 'feebot/1.0'})

    def _make_request(self) -> bytes:
        """
        Request the claim transaction.

        Returns:
            Serialized versioned transaction

        Raises:
            NothingToClaim: On a 400 response
            ClaimError: On other API errors
            NetworkError: On network errors
        """
        form = {
            "publicKey": str(self.creator.pubkey()),
            "action": "collectCreatorFee",
            "priorityFee": self.priority_fee,
            "pool": "pump",
        }

        try:
            response = self.session.post(self.api_url, data=form, timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Connection error: {str(e)}")
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Request timeout: {str(e)}")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request error: {str(e)}")

        logger.info(f"Pump Portal collectCreatorFee - Status: {response.status_code}")

        if response.status_code == 200:
            if not response.content:
                raise ClaimError("Empty claim transaction returned")
            return response.content
        elif response.status_code == 400:
            raise NothingToClaim(response.text)
        else:
            raise ClaimError(f"HTTP {response.status_code}: {response.text}")

    async def _fetch_transaction(self) -> bytes:
        return await asyncio.to_thread(self._make_request)

    async def claim(self) -> Optional[str]:
        """
        Claim all accrued creator fees.

        Returns:
            Claim transaction signature, or None if there was nothing to claim

        Raises:
            ClaimError: If the API rejected the request
            TransactionFailedError: If the claim transaction failed
        """
        logger.info(f"Claiming creator fees for {self.creator.pubkey()}")

        try:
            signature = await self.submitter.submit_prebuilt(
                self._fetch_transaction, [self.creator], label="fee claim"
            )
        except NothingToClaim as e:
            logger.info(f"No creator fees to claim: {str(e)}")
            return None

        logger.info(f"Creator fees claimed: {signature}")
        return signature
