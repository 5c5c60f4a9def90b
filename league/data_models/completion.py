"""
Season completion data models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CompetitionKind(Enum):
    LEAGUE = "league"
    CUP = "cup"


@dataclass(frozen=True)
class DivisionInfo:
    """Division of a league season and the number of rounds it is scheduled for."""
    division: int
    total_rounds: int


@dataclass(frozen=True)
class CompetitionCompletionState:
    """Derived completion status of one competition season."""
    kind: CompetitionKind
    completed: bool
    competition_season_id: Optional[int] = None


@dataclass(frozen=True)
class CompletionStatus:
    """Completion of a league season and its two linked cup seasons."""
    all_completed: bool
    league_completed: bool
    cc_completed: bool
    ic_completed: bool
    reason: str
    season_number: Optional[int] = None
    league_name: Optional[str] = None
    league_season_id: Optional[int] = None
    league_competition_id: Optional[int] = None  # league competition meta
    cc_season_id: Optional[int] = None
    ic_season_id: Optional[int] = None

    @property
    def pending(self) -> list:
        """Names of the competitions that have not finished yet"""
        pending = []
        if not self.league_completed:
            pending.append(self.league_name or 'League')
        if not self.cc_completed:
            pending.append('CC')
        if not self.ic_completed:
            pending.append('IC')
        return pending
