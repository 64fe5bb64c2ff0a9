"""
Transaction submission for Solana.
"""

import time
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from loguru import logger
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from feebot.errors import NetworkError, RpcError, TransactionFailedError
from feebot.solana.fee_oracle import FeeOracle
from feebot.solana.models import TransactionAttempt
from feebot.solana.token_program import create_priority_fee_instruction

DRY_RUN_SIGNATURE = "DRY_RUN_SIGNATURE"

AttemptObserver = Callable[[TransactionAttempt], None]


class ConfirmationTimeoutError(Exception):
    """The transaction was not confirmed inside its blockhash validity window."""
    pass


class ExecutionError(Exception):
    """The transaction landed but its execution failed."""
    pass


class TransactionSubmitter:
    """
    Builds, signs, sends and confirms transactions with retry logic.
    """

    # Maximum number of attempts
    MAX_RETRIES = 3
    # Backoff base in seconds, the wait before attempt n+1 is base ** n
    RETRY_BACKOFF = 2
    # Confirmation timeout in seconds
    CONFIRMATION_TIMEOUT = 60
    # Interval between signature status polls
    POLL_INTERVAL = 1.0

    def __init__(self,
                 ledger,
                 fee_oracle: Optional[FeeOracle] = None,
                 dry_run: bool = False,
                 backoff_base: float = RETRY_BACKOFF,
                 poll_interval: float = POLL_INTERVAL,
                 confirmation_timeout: float = CONFIRMATION_TIMEOUT):
        """
        Initialize the transaction submitter.

        Args:
            ledger: LedgerClient instance
            fee_oracle: Optional FeeOracle; when set a compute unit price is added to built transactions
            dry_run: Return a placeholder signature instead of touching the ledger
            backoff_base: Base of the exponential backoff between attempts
            poll_interval: Seconds between confirmation polls
            confirmation_timeout: Seconds to wait for confirmation
        """
        self.ledger = ledger
        self.fee_oracle = fee_oracle
        self.dry_run = dry_run
        self.backoff_base = backoff_base
        self.poll_interval = poll_interval
        self.confirmation_timeout = confirmation_timeout

        self._observers: List[AttemptObserver] = []

        logger.info(f"TransactionSubmitter initialized (dry_run={dry_run})")

    def add_observer(self, observer: AttemptObserver):
        """Register a callable that receives every TransactionAttempt."""
        self._observers.append(observer)

    def _notify(self, attempt: TransactionAttempt):
        for observer in self._observers:
            try:
                observer(attempt)
            except Exception as e:
                logger.error(f"Attempt observer failed: {str(e)}")

    async def submit(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        max_retries: int = MAX_RETRIES,
        payer: Optional[Pubkey] = None,
        label: str = "transaction"
    ) -> str:
        """
        Submit instructions as one transaction.

        Args:
            instructions: Instructions to include, in order
            signers: Keypairs that must sign; the first pays fees unless payer is given
            max_retries: Maximum number of attempts
            payer: Fee payer
            label: Name used in logs

        Returns:
            Signature of the confirmed transaction

        Raises:
            TransactionFailedError: If the transaction failed on-chain or every attempt failed
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would submit {label} with {len(instructions)} instructions")
            return DRY_RUN_SIGNATURE

        fee_payer = payer or signers[0].pubkey()
        instructions = list(instructions)

        if self.fee_oracle:
            estimate = await self.fee_oracle.get_current_fee_estimate()
            instructions = [create_priority_fee_instruction(estimate.micro_lamports)] + instructions

        async def build() -> Tuple[Transaction, Hash, int]:
            blockhash, last_valid_height = await self.ledger.get_latest_blockhash()
            message = Message.new_with_blockhash(instructions, fee_payer, blockhash)
            return Transaction(list(signers), message, blockhash), blockhash, last_valid_height

        return await self._submit_with_retries(build, max_retries, label)

    async def submit_prebuilt(
        self,
        fetch_transaction: Callable[[], Awaitable[bytes]],
        signers: Sequence[Keypair],
        max_retries: int = MAX_RETRIES,
        label: str = "transaction"
    ) -> str:
        """
        Submit a versioned transaction built by someone else.

        fetch_transaction is called once per attempt so every attempt carries
        a fresh blockhash.

        Returns:
            Signature of the confirmed transaction

        Raises:
            TransactionFailedError: If the transaction failed on-chain or every attempt failed
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would submit prebuilt {label}")
            return DRY_RUN_SIGNATURE

        async def build() -> Tuple[VersionedTransaction, Hash, int]:
            raw = await fetch_transaction()
            unsigned = VersionedTransaction.from_bytes(raw)
            signed = VersionedTransaction(unsigned.message, list(signers))
            _latest, last_valid_height = await self.ledger.get_latest_blockhash()
            return signed, unsigned.message.recent_blockhash, last_valid_height

        return await self._submit_with_retries(build, max_retries, label)

    async def _submit_with_retries(self, build, max_retries: int, label: str) -> str:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        last_error = None

        for attempt_number in range(1, max_retries + 1):
            attempt = TransactionAttempt(attempt_number=attempt_number)

            try:
                transaction, blockhash, last_valid_height = await build()
                attempt.blockhash = str(blockhash)
                attempt.signature = str(transaction.signatures[0])

                logger.info(
                    f"Sending {label} (attempt {attempt_number}/{max_retries})",
                    extra={"signature": attempt.signature, "blockhash": attempt.blockhash}
                )

                await self.ledger.send_transaction(transaction)
                await self._wait_for_confirmation(attempt.signature, last_valid_height)

                attempt.confirmed = True
                self._notify(attempt)

                logger.info(f"{label} confirmed: {attempt.signature}")
                return attempt.signature

            except ExecutionError as e:
                attempt.error = str(e)
                self._notify(attempt)
                logger.error(f"{label} failed on-chain, not retrying: {attempt.error}")
                raise TransactionFailedError(
                    f"{label} failed on-chain: {e}", signature=attempt.signature
                ) from e

            except (NetworkError, RpcError, ConfirmationTimeoutError) as e:
                last_error = e
                attempt.error = str(e)
                self._notify(attempt)

            if attempt_number < max_retries:
                backoff = self.backoff_base ** attempt_number
                logger.warning(
                    f"Retrying {label} in {backoff} seconds (attempt {attempt_number}/{max_retries}): {attempt.error}"
                )
                await asyncio.sleep(backoff)

        logger.error(f"{label} failed after {max_retries} attempts: {last_error}")
        raise TransactionFailedError(f"{label} failed after {max_retries} attempts: {last_error}")

    async def _wait_for_confirmation(self, signature: str, last_valid_height: int):
        """
        Waits for transaction confirmation.

        Raises:
            ExecutionError: If the transaction landed with an error
            ConfirmationTimeoutError: If the blockhash expired or the timeout passed first
        """
        start_time = time.monotonic()

        while time.monotonic() - start_time < self.confirmation_timeout:
            status = await self.ledger.get_signature_status(signature)

            if status is not None:
                if status.err:
                    raise ExecutionError(status.err)
                if status.confirmed:
                    return

            block_height = await self.ledger.get_block_height()
            if block_height > last_valid_height:
                raise ConfirmationTimeoutError(
                    f"Blockhash expired at height {block_height} before {signature} confirmed"
                )

            await asyncio.sleep(self.poll_interval)

        raise ConfirmationTimeoutError(f"Transaction confirmation timeout for {signature}")
