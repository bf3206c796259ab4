"""Subject verdict history and auto-classification."""

from vigil.verdicts.store import VerdictStore

__all__ = ["VerdictStore"]
