"""Incentive pool — protocol fees and finalizer rewards.

Grows from the fee cut of each round's penalties; shrinks when a
finalizer is paid or the treasury withdraws. The balance never goes
negative: rewards are capped at the balance and withdrawals beyond it
are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from vigil.errors import InsufficientPoolBalance, InvalidAmount


@dataclass
class IncentivePool:
    """Accumulated fees plus lifetime counters for auditing."""
    collected_fees: int = 0
    total_fees_collected: int = 0
    total_rewards_paid: int = 0
    total_withdrawn: int = 0

    def deposit_fee(self, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("Fee amount cannot be negative")
        self.collected_fees += amount
        self.total_fees_collected += amount

    def pay_reward(self, amount: int) -> int:
        """Pay up to ``amount`` out of the pool. Returns the amount paid."""
        paid = min(max(amount, 0), self.collected_fees)
        self.collected_fees -= paid
        self.total_rewards_paid += paid
        return paid

    def withdraw(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("Withdrawal amount must be positive")
        if amount > self.collected_fees:
            raise InsufficientPoolBalance(
                f"Withdrawal of {amount} exceeds pool balance {self.collected_fees}"
            )
        self.collected_fees -= amount
        self.total_withdrawn += amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "collected_fees": self.collected_fees,
            "total_fees_collected": self.total_fees_collected,
            "total_rewards_paid": self.total_rewards_paid,
            "total_withdrawn": self.total_withdrawn,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> IncentivePool:
        return IncentivePool(
            collected_fees=int(data.get("collected_fees", 0)),
            total_fees_collected=int(data.get("total_fees_collected", 0)),
            total_rewards_paid=int(data.get("total_rewards_paid", 0)),
            total_withdrawn=int(data.get("total_withdrawn", 0)),
        )
