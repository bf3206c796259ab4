"""Per-subject verdict model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

# Returned by report submission (and stored in subject history) when a
# report is auto-classified instead of opening a round. Never a valid
# round id (round ids start at 1).
AUTO_MARKED = 0


@dataclass
class SubjectVerdict:
    """Historical classification for a subject.

    total_incidents counts every report ever received for the subject,
    including auto-marked ones. It is never reset, not even by a
    governance clear.
    """
    subject_id: str
    has_verdict: bool = False
    is_suspicious: bool = False
    last_round_id: int = 0
    recorded_utc: Optional[datetime] = None
    total_incidents: int = 0
    history: list[int] = field(default_factory=list)

    @property
    def is_standing_suspicious(self) -> bool:
        return self.has_verdict and self.is_suspicious

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "has_verdict": self.has_verdict,
            "is_suspicious": self.is_suspicious,
            "last_round_id": self.last_round_id,
            "recorded_utc": self.recorded_utc.isoformat() if self.recorded_utc else None,
            "total_incidents": self.total_incidents,
            "history": list(self.history),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> SubjectVerdict:
        recorded = data.get("recorded_utc")
        return SubjectVerdict(
            subject_id=data["subject_id"],
            has_verdict=bool(data["has_verdict"]),
            is_suspicious=bool(data["is_suspicious"]),
            last_round_id=int(data["last_round_id"]),
            recorded_utc=datetime.fromisoformat(recorded) if recorded else None,
            total_incidents=int(data["total_incidents"]),
            history=[int(r) for r in data.get("history", [])],
        )
