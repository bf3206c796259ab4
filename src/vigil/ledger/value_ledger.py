"""External value-ledger interface.

Custody of committed capital lives outside the engine. The engine calls
``collect`` when a participant deposits and ``disburse`` when value
leaves (withdrawals, finalizer rewards, treasury withdrawals). Both run
inside the engine's transaction: if either raises, the engine rolls back.

A collaborator that calls back into the engine from ``collect`` or
``disburse`` is rejected with ReentrantCall.
"""

from __future__ import annotations

from typing import Dict, Protocol

from vigil.errors import InsufficientStake, InvalidAmount


class ValueLedger(Protocol):
    """Custody ledger the engine delegates fund movements to."""

    def collect(self, account_id: str, amount: int) -> None:
        """Move ``amount`` from the account into engine custody."""

    def disburse(self, account_id: str, amount: int) -> None:
        """Move ``amount`` from engine custody to the account."""


class InMemoryValueLedger:
    """Simple custody ledger tracking external balances and engine custody.

    Accounts without a recorded balance are treated as unfunded. With
    ``unlimited`` set, balances are never enforced: a shortfall on either
    side is minted, so no balance or custody goes below zero. This suits
    a CLI or embedding where custody is reconciled elsewhere.
    """

    def __init__(self, balances: Dict[str, int] | None = None, unlimited: bool = False) -> None:
        self._balances: Dict[str, int] = dict(balances or {})
        self._unlimited = unlimited
        self.custody = 0

    def balance_of(self, account_id: str) -> int:
        return self._balances.get(account_id, 0)

    def fund(self, account_id: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("Funding amount must be positive")
        self._balances[account_id] = self.balance_of(account_id) + amount

    def collect(self, account_id: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("Collected amount must be positive")
        balance = self.balance_of(account_id)
        if not self._unlimited and balance < amount:
            raise InsufficientStake(
                f"External balance {balance} of {account_id} cannot cover {amount}"
            )
        self._balances[account_id] = max(balance - amount, 0)
        self.custody += amount

    def disburse(self, account_id: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("Disbursed amount must be positive")
        if not self._unlimited and amount > self.custody:
            raise InsufficientStake(
                f"Custody {self.custody} cannot cover disbursement of {amount}"
            )
        self.custody = max(self.custody - amount, 0)
        self._balances[account_id] = self.balance_of(account_id) + amount
