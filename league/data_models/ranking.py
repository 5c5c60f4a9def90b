"""
Global ranking data models.

Provides immutable records for fighter careers (the inputs of the global
ranking score) and for versioned global ranking snapshots.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Participation:
    """A fighter entered in a season: a division roster slot or a cup place."""
    competition_id: int
    season: int
    fighter_id: int
    division: Optional[int] = None
    competition_season_id: Optional[int] = None


@dataclass(frozen=True)
class SeasonDetail:
    """A fighter's participation in one season of a competition."""
    season: int
    division: Optional[int]  # None for cup seasons
    fights: int
    wins: int
    losses: int
    points: Optional[int]  # None for cup seasons
    win_percentage: float
    final_position: Optional[int] = None  # league final rank in the division
    cup_result: Optional[str] = None  # "Round 1" ... "Champion"
    competition_season_id: Optional[int] = None


@dataclass(frozen=True)
class TitleDetail:
    """A title won in one season (league titles are per division)."""
    season: int
    division: Optional[int] = None
    competition_season_id: Optional[int] = None


@dataclass(frozen=True)
class CompetitionRecord:
    """A fighter's record across all seasons of one competition."""
    competition_id: int
    total_fights: int = 0
    total_wins: int = 0
    total_losses: int = 0
    win_percentage: float = 0.0
    season_details: Tuple[SeasonDetail, ...] = ()
    titles: Tuple[TitleDetail, ...] = ()

    @property
    def number_of_season_appearances(self) -> int:
        return len(self.season_details)

    @property
    def total_titles(self) -> int:
        return len(self.titles)

    def division_appearances(self, division: int) -> int:
        return sum(1 for detail in self.season_details if detail.division == division)


@dataclass(frozen=True)
class FighterCareer:
    """Everything the global ranking score reads for one fighter."""
    fighter_id: int
    competition_records: Tuple[CompetitionRecord, ...] = ()
    longest_win_streak: int = 0

    def record_for(self, competition_id: int) -> Optional[CompetitionRecord]:
        for record in self.competition_records:
            if record.competition_id == competition_id:
                return record
        return None

    @property
    def total_fights(self) -> int:
        return sum(record.total_fights for record in self.competition_records)

    @property
    def total_wins(self) -> int:
        return sum(record.total_wins for record in self.competition_records)

    @property
    def overall_win_percentage(self) -> float:
        if self.total_fights == 0:
            return 0.0
        return self.total_wins / self.total_fights * 100

    @property
    def total_titles(self) -> int:
        return sum(record.total_titles for record in self.competition_records)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Terms of the global ranking score for one fighter."""
    win_percentage: float
    league_titles: int
    champions_cup_titles: int
    invicta_cup_titles: int
    champions_cup_appearances: int
    invicta_cup_appearances: int
    division_1_appearances: int
    division_2_appearances: int
    division_3_appearances: int
    longest_win_streak: int

    @property
    def total_titles(self) -> int:
        return self.league_titles + self.champions_cup_titles + self.invicta_cup_titles


@dataclass(frozen=True)
class TitleCount:
    competition_id: int
    number_of_titles: int


@dataclass(frozen=True)
class CupAppearance:
    competition_id: int
    appearances: int


@dataclass(frozen=True)
class DivisionAppearance:
    division: int
    appearances: int


@dataclass(frozen=True)
class LeagueAppearance:
    competition_id: int
    division_appearances: Tuple[DivisionAppearance, ...]


@dataclass(frozen=True)
class GlobalRankEntry:
    """Single row of a global ranking generation."""
    fighter_id: int
    score: float
    rank: int
    breakdown: ScoreBreakdown
    titles: Tuple[TitleCount, ...] = ()
    cup_appearances: Tuple[CupAppearance, ...] = ()
    league_appearances: Tuple[LeagueAppearance, ...] = ()


@dataclass(frozen=True)
class GlobalRankSnapshot:
    """One immutable, versioned ranking of all fighters."""
    league_competition_id: int
    entries: Tuple[GlobalRankEntry, ...]
    version: Optional[int] = None
    snapshot_id: Optional[int] = None
    is_current: bool = False
    created_at: Optional[datetime] = None

    @property
    def total_fighters(self) -> int:
        return len(self.entries)

    def entry_for(self, fighter_id: int) -> Optional[GlobalRankEntry]:
        for entry in self.entries:
            if entry.fighter_id == fighter_id:
                return entry
        return None

    def top(self, limit: int = 10) -> Tuple[GlobalRankEntry, ...]:
        return self.entries[:limit]
