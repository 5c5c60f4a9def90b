"""
Fight data models.

Provides immutable records for decided and pending fights as consumed by the
standings, streak and competition history calculators.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from league.utils.fight_identifier import parse_fight_identifier, stage_order


@dataclass(frozen=True)
class FightContext:
    """Where a fight took place: competition, season, division and round."""
    competition_id: int
    season: int
    division: Optional[int]
    round: Optional[int]
    fight_id: Optional[int] = None
    fight_identifier: str = ''


@dataclass(frozen=True)
class FightRecord:
    """Single fight between two fighters, decided once winner_id is set."""
    fight_identifier: str
    fighter1_id: int
    fighter2_id: int
    winner_id: Optional[int]
    competition_id: int  # competition meta (league or cup), not the season
    season: int
    division: Optional[int] = None
    round: Optional[int] = None
    fight_number: int = 0
    stage: Optional[str] = None  # cup stage code, None for league fights
    competition_code: str = ''
    fight_id: Optional[int] = None
    competition_season_id: Optional[int] = None

    @property
    def is_decided(self) -> bool:
        return self.winner_id is not None

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        return self.fighter2_id if self.winner_id == self.fighter1_id else self.fighter1_id

    @property
    def participants(self) -> Tuple[int, int]:
        return self.fighter1_id, self.fighter2_id

    @property
    def context(self) -> FightContext:
        return FightContext(
            competition_id=self.competition_id,
            season=self.season,
            division=self.division,
            round=self.round,
            fight_id=self.fight_id,
            fight_identifier=self.fight_identifier,
        )

    @property
    def chronological_key(self) -> tuple:
        """
        Ordering key: season, division, round (or cup stage), fight number.

        Within a season league fights come before cup fights; cup fights have
        no division and sort by their stage order. The competition code only
        separates fights that are otherwise level.
        """
        is_cup = self.stage is not None
        if self.round is not None:
            round_index = self.round
        else:
            round_index = stage_order(self.stage)
        return (
            self.season,
            1 if is_cup else 0,
            self.division or 0,
            round_index,
            self.fight_number,
            self.competition_code,
        )

    @classmethod
    def from_identifier(
        cls,
        fight_identifier: str,
        fighter1_id: int,
        fighter2_id: int,
        winner_id: Optional[int],
        competition_id: int,
        fight_id: Optional[int] = None,
        competition_season_id: Optional[int] = None,
    ) -> 'FightRecord':
        """Build a record whose season/division/round/stage come from the identifier"""
        parsed = parse_fight_identifier(fight_identifier)
        return cls(
            fight_identifier=fight_identifier,
            fighter1_id=fighter1_id,
            fighter2_id=fighter2_id,
            winner_id=winner_id,
            competition_id=competition_id,
            season=parsed.season,
            division=parsed.division,
            round=parsed.round,
            fight_number=parsed.fight_number,
            stage=parsed.stage,
            competition_code=parsed.competition_code or '',
            fight_id=fight_id,
            competition_season_id=competition_season_id,
        )
