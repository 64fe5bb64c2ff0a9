"""
Async access to the Solana ledger.

Wraps solana-py's AsyncClient and translates its responses into the
engine's models and its failures into the engine's error taxonomy.
"""

import asyncio
from typing import List, Optional, Tuple

import requests
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from feebot.errors import AccountNotFoundError, MalformedAccountError, NetworkError, RpcError
from feebot.solana.codec import TOKEN_ACCOUNT_SIZE, decode_token_account
from feebot.solana.models import AccountSnapshot, SignatureStatus, TokenAccountBalance
from feebot.solana.token_program import TOKEN_PROGRAM_ID


class LedgerClient:
    """
    Reads ledger state and sends transactions through a single RPC endpoint.
    """

    # Timeout for raw JSON-RPC calls made outside AsyncClient
    HTTP_TIMEOUT = 15

    def __init__(self, rpc_endpoint: str, async_client: Optional[AsyncClient] = None):
        """
        Initialize the ledger client.

        Args:
            rpc_endpoint: HTTP RPC URL
            async_client: Optional AsyncClient instance. If None, creates a new one.
        """
        self.rpc_endpoint = rpc_endpoint
        self.client = async_client if async_client else AsyncClient(rpc_endpoint, commitment=Confirmed)
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

        logger.info(f"LedgerClient initialized for {rpc_endpoint}")

    async def close(self):
        await self.client.close()
        self.session.close()

    async def _call(self, description: str, coro):
        try:
            return await coro
        except RPCException as e:
            raise RpcError(f"{description} failed: {e}") from e
        except SolanaRpcException as e:
            raise NetworkError(f"{description} failed: {e}") from e
        except (OSError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{description} failed: {e}") from e

    async def get_balance(self, address: Pubkey) -> int:
        """Lamport balance of an account (0 if it does not exist)."""
        resp = await self._call("getBalance", self.client.get_balance(address))
        return resp.value

    async def get_account(self, address: Pubkey) -> AccountSnapshot:
        """
        Fetch lamports and data of an account.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        resp = await self._call("getAccountInfo", self.client.get_account_info(address))
        if resp.value is None:
            raise AccountNotFoundError(str(address))
        return AccountSnapshot(
            address=str(address),
            lamports=resp.value.lamports,
            data=bytes(resp.value.data),
        )

    async def account_exists(self, address: Pubkey) -> bool:
        try:
            await self.get_account(address)
            return True
        except AccountNotFoundError:
            return False

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        """Latest blockhash and the last block height at which it is valid."""
        resp = await self._call("getLatestBlockhash", self.client.get_latest_blockhash(Confirmed))
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def get_block_height(self) -> int:
        resp = await self._call("getBlockHeight", self.client.get_block_height(Confirmed))
        return resp.value

    async def send_transaction(self, transaction) -> str:
        """
        Send a signed legacy or versioned transaction.

        Returns:
            Transaction signature
        """
        resp = await self._call(
            "sendTransaction",
            self.client.send_raw_transaction(
                bytes(transaction),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            ),
        )
        return str(resp.value)

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Status of a signature, or None while the cluster has not seen it."""
        resp = await self._call(
            "getSignatureStatuses",
            self.client.get_signature_statuses([Signature.from_string(signature)]),
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return None

        confirmed = status.confirmation_status in (
            TransactionConfirmationStatus.Confirmed,
            TransactionConfirmationStatus.Finalized,
        )
        return SignatureStatus(
            signature=signature,
            confirmed=confirmed,
            err=str(status.err) if status.err is not None else None,
        )

    async def get_token_balance(self, token_account: Pubkey) -> int:
        """Raw token amount held by a token account (0 if it does not exist)."""
        try:
            resp = await self._call(
                "getTokenAccountBalance", self.client.get_token_account_balance(token_account)
            )
        except RpcError as e:
            # The node reports a missing token account as an invalid param
            logger.debug(f"Token account {token_account} unavailable: {str(e)}")
            return 0
        return int(resp.value.amount)

    async def get_token_accounts(self, mint: Pubkey) -> List[TokenAccountBalance]:
        """Every token account of a mint."""
        resp = await self._call(
            "getProgramAccounts",
            self.client.get_program_accounts(
                TOKEN_PROGRAM_ID,
                encoding="base64",
                filters=[TOKEN_ACCOUNT_SIZE, MemcmpOpts(offset=0, bytes=str(mint))],
            ),
        )

        accounts = []
        for keyed in resp.value:
            try:
                accounts.append(decode_token_account(str(keyed.pubkey), bytes(keyed.account.data)))
            except MalformedAccountError as e:
                logger.warning(f"Skipping token account: {str(e)}")

        logger.debug(f"Found {len(accounts)} token accounts for {mint}")
        return accounts

    async def get_recent_prioritization_fees(self) -> List[int]:
        """Recent prioritization fees in micro-lamports per compute unit."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": "getRecentPrioritizationFees", "params": [[]]}

        try:
            response = await asyncio.to_thread(
                self.session.post, self.rpc_endpoint, json=payload, timeout=self.HTTP_TIMEOUT
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"getRecentPrioritizationFees failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"getRecentPrioritizationFees returned invalid JSON: {e}") from e

        if body.get("error"):
            raise RpcError(f"getRecentPrioritizationFees failed: {body['error']}")

        return [
            int(item.get("prioritizationFee", 0))
            for item in body.get("result") or []
            if isinstance(item, dict)
        ]

    async def check_health(self) -> bool:
        """True if the RPC node answers a slot query."""
        try:
            resp = await self._call("getSlot", self.client.get_slot())
            logger.debug(f"RPC healthy at slot {resp.value}")
            return True
        except (NetworkError, RpcError) as e:
            logger.error(f"RPC health check failed: {str(e)}")
            return False
