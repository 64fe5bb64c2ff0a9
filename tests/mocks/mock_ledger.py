"""
Mock Ledger Client
==================
In-memory stand-in for LedgerClient so strategies, the submitter and the
orchestrator can be exercised without network calls.
"""

from typing import Dict, List, Optional, Set

from solders.hash import Hash

from feebot.errors import AccountNotFoundError
from feebot.solana.codec import encode_reserve_state
from feebot.solana.models import AccountSnapshot, ReserveState, SignatureStatus, TokenAccountBalance


class MockLedgerClient:
    """
    Mock ledger.

    Usage:
        ledger = MockLedgerClient()
        ledger.set_balance(wallet.pubkey(), 5_000_000_000)
        ledger.set_reserves(curve_address, reserves, lamports=...)
        ledger.send_script = [NetworkError("down"), None]  # first send fails, second succeeds
        ledger.fail_execution_on = {0}                      # first sent transaction fails on-chain
    """

    def __init__(self):
        self.balances: Dict[str, List[int]] = {}
        self.accounts: Dict[str, AccountSnapshot] = {}
        self.token_balances: Dict[str, List[int]] = {}
        self.token_accounts: List[TokenAccountBalance] = []
        self.prioritization_fees: List[int] = []
        self.healthy = True

        self.block_height = 1_000
        self.valid_blocks = 150

        self.send_script: List[Optional[Exception]] = []
        self.fail_execution_on: Set[int] = set()
        self.unconfirmed: Set[int] = set()

        self.sent = []
        self.blockhash_requests = 0
        self._statuses: Dict[str, SignatureStatus] = {}
        self._unseen: Set[str] = set()

    # Setup helpers

    def set_balance(self, address, *lamports: int):
        """Balances returned on successive reads; the last one repeats."""
        self.balances[str(address)] = list(lamports)

    def set_token_balance(self, address, *amounts: int):
        self.token_balances[str(address)] = list(amounts)

    def set_account(self, address, lamports: int, data: bytes = b""):
        self.accounts[str(address)] = AccountSnapshot(address=str(address), lamports=lamports, data=data)

    def set_reserves(self, address, reserves: ReserveState, lamports: int = 2_000_000):
        self.set_account(address, lamports, encode_reserve_state(reserves))

    @staticmethod
    def _next(values: List[int]) -> int:
        return values.pop(0) if len(values) > 1 else values[0]

    # LedgerClient interface

    async def get_balance(self, address) -> int:
        values = self.balances.get(str(address))
        return self._next(values) if values else 0

    async def get_account(self, address) -> AccountSnapshot:
        if str(address) not in self.accounts:
            raise AccountNotFoundError(str(address))
        return self.accounts[str(address)]

    async def account_exists(self, address) -> bool:
        return str(address) in self.accounts

    async def get_latest_blockhash(self):
        self.blockhash_requests += 1
        return Hash.new_unique(), self.block_height + self.valid_blocks

    async def get_block_height(self) -> int:
        return self.block_height

    async def send_transaction(self, transaction) -> str:
        index = len(self.sent)
        self.sent.append(transaction)

        if self.send_script:
            error = self.send_script.pop(0)
            if error is not None:
                raise error

        signature = str(transaction.signatures[0])
        if index in self.unconfirmed:
            self._unseen.add(signature)
        elif index in self.fail_execution_on:
            self._statuses[signature] = SignatureStatus(
                signature=signature, confirmed=True, err="InstructionError(0, Custom(6002))"
            )
        else:
            self._statuses[signature] = SignatureStatus(signature=signature, confirmed=True)
        return signature

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        if signature in self._unseen:
            # Never lands; let the blockhash expire
            self.block_height += self.valid_blocks + 1
            return None
        return self._statuses.get(signature)

    async def get_token_balance(self, token_account) -> int:
        values = self.token_balances.get(str(token_account))
        return self._next(values) if values else 0

    async def get_token_accounts(self, mint) -> List[TokenAccountBalance]:
        return [account for account in self.token_accounts if account.mint == str(mint)]

    async def get_recent_prioritization_fees(self) -> List[int]:
        return list(self.prioritization_fees)

    async def check_health(self) -> bool:
        return self.healthy

    async def close(self):
        pass
