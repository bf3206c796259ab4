"""Configuration and authorization policy."""

from vigil.policy.authorization import (
    AllowAllAuthorizer,
    Authorizer,
    Capability,
    StaticAuthorizer,
)
from vigil.policy.resolver import PolicyResolver

__all__ = [
    "AllowAllAuthorizer",
    "Authorizer",
    "Capability",
    "PolicyResolver",
    "StaticAuthorizer",
]
