"""Capability-based authorization boundary.

The engine does not administer roles. It asks an injected Authorizer
whether a caller holds a capability and refuses the operation if not.

Capability classes:
- REPORT_SUBMITTER: the detection collaborator allowed to submit reports.
- PROTOCOL_GOVERNANCE: core safety parameters, verdict clearing.
- PARAMETER_TUNING: karma and reward knobs.
- TREASURY: fee percentages and fee withdrawal.
"""

from __future__ import annotations

import enum
from typing import Iterable, Mapping, Protocol

from vigil.errors import Unauthorized


class Capability(str, enum.Enum):
    REPORT_SUBMITTER = "report_submitter"
    PROTOCOL_GOVERNANCE = "protocol_governance"
    PARAMETER_TUNING = "parameter_tuning"
    TREASURY = "treasury"


class Authorizer(Protocol):
    def has_capability(self, caller_id: str, capability: Capability) -> bool:
        """True if ``caller_id`` holds ``capability``."""


class StaticAuthorizer:
    """Authorizer backed by a fixed capability → holders mapping."""

    def __init__(self, grants: Mapping[Capability, Iterable[str]] | None = None) -> None:
        self._grants: dict[Capability, frozenset[str]] = {
            Capability(cap): frozenset(h.strip() for h in holders)
            for cap, holders in (grants or {}).items()
        }

    def has_capability(self, caller_id: str, capability: Capability) -> bool:
        return caller_id.strip() in self._grants.get(capability, frozenset())

    def holders(self, capability: Capability) -> frozenset[str]:
        return self._grants.get(capability, frozenset())


class AllowAllAuthorizer:
    """Grants every capability. For embedding where the caller has
    already been authorized upstream."""

    def has_capability(self, caller_id: str, capability: Capability) -> bool:
        return True


def require_capability(authorizer: Authorizer, caller_id: str, capability: Capability) -> None:
    if not authorizer.has_capability(caller_id, capability):
        raise Unauthorized(f"{caller_id} lacks capability {capability.value}")
