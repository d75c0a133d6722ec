from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ...errors import ReportNotFoundError
from ...models.match import Match
from ..reports.store import ReportInfo, ReportStore, SecurityQuestion


@dataclass(frozen=True)
class MatchParties:
    source: ReportInfo
    target: ReportInfo

    def report(self, side: str) -> ReportInfo:
        return self.source if side == "source" else self.target

    def side_of(self, user_id: Optional[int]) -> Optional[str]:
        if user_id is None:
            return None
        if self.source.reporter_user_id == user_id:
            return "source"
        if self.target.reporter_user_id == user_id:
            return "target"
        return None

    @property
    def claimant_side(self) -> Optional[str]:
        """Side of the lost report; its reporter is the one claiming ownership."""
        if self.source.type == "lost" and self.target.type == "found":
            return "source"
        if self.target.type == "lost" and self.source.type == "found":
            return "target"
        return None

    @property
    def finder_side(self) -> Optional[str]:
        claimant = self.claimant_side
        if claimant is None:
            return None
        return "target" if claimant == "source" else "source"


def load_parties(store: ReportStore, match: Match) -> MatchParties:
    source = store.get_report(int(match.source_report_id))
    if source is None:
        raise ReportNotFoundError(int(match.source_report_id))
    target = store.get_report(int(match.target_report_id))
    if target is None:
        raise ReportNotFoundError(int(match.target_report_id))
    return MatchParties(source=source, target=target)


def challenge_questions(store: ReportStore, parties: MatchParties) -> List[SecurityQuestion]:
    """Ownership questions the finder recorded; empty when no challenge applies."""
    finder = parties.finder_side
    if finder is None:
        return []
    return store.get_security_questions(parties.report(finder).id)
