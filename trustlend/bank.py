"""
bank.py - In-Memory Value Transfer

CoinStore is a minimal double-entry balance book implementing the
ValueTransfer protocol. Coins enter through mint() from the reserved issuer
account and afterwards only move between accounts, so

    sum(balances) == total minted

holds at all times. A transfer is validated in full before either balance is
touched: it applies completely or not at all.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .core import TransferResult, is_amount, require_account
from .logging_config import get_logger


logger = get_logger(__name__)

# Reserved account coins are issued from. Exempt from balance checks.
ISSUER_ACCOUNT = "issuer"


@dataclass(frozen=True, slots=True)
class TransferRecord:
    """One applied transfer."""
    sequence: int
    source: str
    dest: str
    amount: int

    def __repr__(self) -> str:
        return f"Transfer#{self.sequence}({self.amount}: {self.source}→{self.dest})"


class CoinStore:
    """
    Account balances for a single currency.

    Not thread-safe; the engine serializes every operation.

    Example:
        store = CoinStore()
        store.mint("alice", 10_000_000)
        store.transfer("alice", "admin", 1_050_000)   # TransferResult.APPLIED
        store.balance_of("admin")                     # 1_050_000
    """

    def __init__(self):
        self._balances: Dict[str, int] = {ISSUER_ACCOUNT: 0}
        self.transfer_log: List[TransferRecord] = []
        self._next_sequence = 0

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def accounts(self) -> List[str]:
        return sorted(self._balances)

    def total_supply(self) -> int:
        """Sum of all balances except the issuer's (which is -supply)."""
        return sum(b for a, b in self._balances.items() if a != ISSUER_ACCOUNT)

    def mint(self, account: str, amount: int) -> TransferResult:
        """Issue new coins to an account."""
        return self._apply(ISSUER_ACCOUNT, account, amount)

    def transfer(self, source: str, dest: str, amount: int) -> TransferResult:
        """
        Move `amount` from source to dest.

        Returns:
            APPLIED if both balances changed, REJECTED if nothing did
        """
        if source == ISSUER_ACCOUNT:
            logger.debug("REJECTED: transfers may not draw on the issuer account")
            return TransferResult.REJECTED
        return self._apply(source, dest, amount)

    def _validate(self, source: str, dest: str, amount: int) -> Tuple[bool, str]:
        try:
            require_account(source, "source")
            require_account(dest, "dest")
        except ValueError as exc:
            return False, str(exc)
        if source == dest:
            return False, "source and dest must be different"
        if not is_amount(amount) or amount <= 0:
            return False, f"amount must be a positive integer, got {amount!r}"
        if source != ISSUER_ACCOUNT and self.balance_of(source) < amount:
            return False, f"{source}: balance {self.balance_of(source)} < {amount}"
        return True, ""

    def _apply(self, source: str, dest: str, amount: int) -> TransferResult:
        valid, reason = self._validate(source, dest, amount)
        if not valid:
            logger.debug("REJECTED: %s", reason)
            return TransferResult.REJECTED

        self._balances[source] = self.balance_of(source) - amount
        self._balances[dest] = self.balance_of(dest) + amount

        record = TransferRecord(self._next_sequence, source, dest, amount)
        self._next_sequence += 1
        self.transfer_log.append(record)
        logger.debug("APPLIED: %r", record)
        return TransferResult.APPLIED

    def last_transfer(self) -> Optional[TransferRecord]:
        return self.transfer_log[-1] if self.transfer_log else None
