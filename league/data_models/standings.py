"""
Standings data models.

Provides immutable per-fight standings snapshots for league divisions.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class FighterStanding:
    """Single standings row."""
    fighter_id: int
    fights_count: int = 0
    wins: int = 0
    points: int = 0
    rank: int = 0
    total_fighters_count: int = 0

    @property
    def losses(self) -> int:
        return self.fights_count - self.wins


@dataclass(frozen=True)
class StandingsSnapshot:
    """Cumulative standings of a division as of one specific fight."""
    competition_id: int
    season: int
    division: int
    round: int
    fight_identifier: str
    standings: Tuple[FighterStanding, ...]
    fight_id: Optional[int] = None

    @classmethod
    def baseline(
        cls,
        competition_id: int,
        season: int,
        division: int,
        roster: Iterable[int],
    ) -> 'StandingsSnapshot':
        """Empty standings before the first fight of a division, ranked by fighter id"""
        fighter_ids = sorted(roster)
        total = len(fighter_ids)
        standings = tuple(
            FighterStanding(fighter_id=fighter_id, rank=index + 1, total_fighters_count=total)
            for index, fighter_id in enumerate(fighter_ids)
        )
        return cls(
            competition_id=competition_id,
            season=season,
            division=division,
            round=0,
            fight_identifier='',
            standings=standings,
        )

    @property
    def total_fighters_count(self) -> int:
        return len(self.standings)

    def by_fighter(self) -> Dict[int, FighterStanding]:
        return {standing.fighter_id: standing for standing in self.standings}

    def get(self, fighter_id: int) -> Optional[FighterStanding]:
        for standing in self.standings:
            if standing.fighter_id == fighter_id:
                return standing
        return None

    def ranked_fighter_ids(self) -> List[int]:
        return [standing.fighter_id for standing in self.standings]

    def leader(self) -> Optional[FighterStanding]:
        return self.standings[0] if self.standings else None
