"""Verdict store — per-subject verdict history and auto-classification.

Rules:
- A subject with a standing SUSPICIOUS verdict is auto-marked on every
  new report: the incident counter rises, the history gets an
  AUTO_MARKED entry, and no round is opened.
- Otherwise (no verdict, or last verdict CLEAN) a new round is opened.
- Finalization with SUSPICIOUS or CLEAN overwrites the verdict.
  INCONCLUSIVE leaves it untouched.
- Governance may clear a verdict; total_incidents and history survive.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from vigil.errors import NoVerdictToClear
from vigil.models.round import Report, RoundOutcome
from vigil.models.verdict import AUTO_MARKED, SubjectVerdict


class VerdictStore:
    """In-memory verdicts keyed by subject id."""

    def __init__(self, verdicts: Optional[Dict[str, SubjectVerdict]] = None) -> None:
        self._verdicts: Dict[str, SubjectVerdict] = verdicts if verdicts is not None else {}

    def get(self, subject_id: str) -> Optional[SubjectVerdict]:
        return self._verdicts.get(subject_id)

    def all(self) -> Dict[str, SubjectVerdict]:
        return dict(self._verdicts)

    def should_auto_mark(self, subject_id: str) -> bool:
        verdict = self._verdicts.get(subject_id)
        return verdict is not None and verdict.is_standing_suspicious

    def on_report(self, report: Report, open_round: Callable[[Report], int]) -> int:
        """Route a report: auto-mark, or open a round via ``open_round``.

        Returns the new round id, or AUTO_MARKED.
        """
        verdict = self._verdicts.get(report.subject_id)
        if verdict is not None and verdict.is_standing_suspicious:
            verdict.total_incidents += 1
            verdict.history.append(AUTO_MARKED)
            return AUTO_MARKED

        round_id = open_round(report)
        if verdict is None:
            verdict = SubjectVerdict(subject_id=report.subject_id)
            self._verdicts[report.subject_id] = verdict
        verdict.history.append(round_id)
        verdict.total_incidents += 1
        return round_id

    def on_finalize(
        self,
        subject_id: str,
        round_id: int,
        outcome: RoundOutcome,
        now: datetime,
    ) -> bool:
        """Record a round outcome. Returns True if the verdict changed."""
        if outcome not in (RoundOutcome.SUSPICIOUS, RoundOutcome.CLEAN):
            return False
        verdict = self._verdicts.get(subject_id)
        if verdict is None:
            verdict = SubjectVerdict(subject_id=subject_id)
            self._verdicts[subject_id] = verdict
        verdict.has_verdict = True
        verdict.is_suspicious = outcome == RoundOutcome.SUSPICIOUS
        verdict.last_round_id = round_id
        verdict.recorded_utc = now
        return True

    def clear(self, subject_id: str) -> SubjectVerdict:
        verdict = self._verdicts.get(subject_id)
        if verdict is None or not verdict.has_verdict:
            raise NoVerdictToClear(f"No verdict recorded for {subject_id}")
        verdict.has_verdict = False
        verdict.is_suspicious = False
        return verdict
