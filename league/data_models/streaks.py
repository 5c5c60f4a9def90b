"""
Streak and opponent history data models.

Provides immutable records produced by the streak replay. Every update
returns a new record; nothing is mutated in place.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from league.data_models.fight import FightContext


class StreakType(Enum):
    WIN = "win"
    LOSE = "lose"


@dataclass(frozen=True)
class StreakRecord:
    """Contiguous run of wins or losses for one fighter."""
    type: StreakType
    competition_id: int  # competition where the streak started
    start: FightContext
    count: int = 1
    active: bool = True
    end: Optional[FightContext] = None
    opponents: Tuple[int, ...] = ()

    def extend(self, opponent_id: int) -> 'StreakRecord':
        """Return the streak with one more fight against opponent_id"""
        return replace(self, count=self.count + 1, opponents=self.opponents + (opponent_id,))

    def close(self, end: FightContext) -> 'StreakRecord':
        """Return the streak frozen at the fight that broke it"""
        return replace(self, active=False, end=end)

    @classmethod
    def open(cls, streak_type: StreakType, context: FightContext, opponent_id: int) -> 'StreakRecord':
        return cls(
            type=streak_type,
            competition_id=context.competition_id,
            start=context,
            count=1,
            active=True,
            opponents=(opponent_id,),
        )


@dataclass(frozen=True)
class FightDetail:
    """One fight inside a head-to-head history."""
    competition_id: int
    season: int
    division: Optional[int]
    round: Optional[int]
    fight_id: Optional[int]
    fight_identifier: str
    is_winner: bool


@dataclass(frozen=True)
class OpponentHistoryEntry:
    """Aggregate head-to-head record against one opponent."""
    opponent_id: int
    total_fights: int = 0
    total_wins: int = 0
    total_losses: int = 0
    win_percentage: int = 0
    details: Tuple[FightDetail, ...] = ()

    def record(self, detail: FightDetail) -> 'OpponentHistoryEntry':
        """Return the entry with one more fight added"""
        total_fights = self.total_fights + 1
        total_wins = self.total_wins + (1 if detail.is_winner else 0)
        total_losses = self.total_losses + (0 if detail.is_winner else 1)
        return replace(
            self,
            total_fights=total_fights,
            total_wins=total_wins,
            total_losses=total_losses,
            win_percentage=round(total_wins / total_fights * 100),
            details=self.details + (detail,),
        )


@dataclass(frozen=True)
class FighterStreakState:
    """Streaks and opponent history of one fighter after a replay."""
    fighter_id: int
    streaks: Tuple[StreakRecord, ...] = ()
    opponent_history: Tuple[OpponentHistoryEntry, ...] = ()

    def active_streak(self, competition_id: Optional[int] = None) -> Optional[StreakRecord]:
        """Active streak, optionally restricted to streaks started in one competition"""
        for streak in self.streaks:
            if streak.active and (competition_id is None or streak.competition_id == competition_id):
                return streak
        return None

    def history_against(self, opponent_id: int) -> Optional[OpponentHistoryEntry]:
        for entry in self.opponent_history:
            if entry.opponent_id == opponent_id:
                return entry
        return None

    @property
    def longest_win_streak(self) -> int:
        return max(
            (streak.count for streak in self.streaks if streak.type == StreakType.WIN),
            default=0,
        )
