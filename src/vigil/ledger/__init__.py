"""Stake accounting — participant ledger, incentive pool, custody interface.

The engine only tracks balances. Real custody is delegated to a
ValueLedger collaborator.
"""

from vigil.ledger.incentive_pool import IncentivePool
from vigil.ledger.participants import ParticipantLedger
from vigil.ledger.value_ledger import InMemoryValueLedger, ValueLedger

__all__ = [
    "IncentivePool",
    "InMemoryValueLedger",
    "ParticipantLedger",
    "ValueLedger",
]
