"""
Global ranking calculator.

Turns fighter careers into a single score and a full ranking of all fighters.

Formula:
    (win% / 10) + league titles x 5 + CC titles x 4 + IC titles x 4
    + CC appearances x 3 + IC appearances x 2
    + division 1 appearances x 1 + division 2 appearances x 0.75
    + division 3 appearances x 0.5 + (longest win streak / 5)

Ties on score are broken by overall win percentage, then total titles, then
fighter id, so the same careers always produce the same ranking.
"""

from typing import Dict, Iterable, List, Optional

from league.constants import RankingWeights
from league.data_models.ranking import (
    CupAppearance, DivisionAppearance, FighterCareer, GlobalRankEntry,
    GlobalRankSnapshot, LeagueAppearance, ScoreBreakdown, TitleCount
)

RANKED_DIVISIONS = (1, 2, 3)


class RankingCalculator:
    """Scores and ranks fighters for one league and its two cups."""

    def __init__(self, league_competition_id: int, champions_cup_id: Optional[int],
                 invicta_cup_id: Optional[int], weights: Optional[Dict[str, float]] = None):
        """
        Initialize the calculator.

        Args:
            league_competition_id: Competition meta id of the league
            champions_cup_id: Competition meta id of the Champions Cup
            invicta_cup_id: Competition meta id of the Invicta Cup
            weights: Overrides keyed like RankingWeights.as_dict()
        """
        self.league_competition_id = league_competition_id
        self.champions_cup_id = champions_cup_id
        self.invicta_cup_id = invicta_cup_id

        self.weights = RankingWeights.as_dict()
        if weights:
            unknown = set(weights) - set(self.weights)
            if unknown:
                raise ValueError(f"Unknown ranking weights: {sorted(unknown)}")
            self.weights.update(weights)

    def _titles(self, career: FighterCareer, competition_id: Optional[int]) -> int:
        record = career.record_for(competition_id) if competition_id is not None else None
        return record.total_titles if record else 0

    def _appearances(self, career: FighterCareer, competition_id: Optional[int]) -> int:
        record = career.record_for(competition_id) if competition_id is not None else None
        return record.number_of_season_appearances if record else 0

    def _division_appearances(self, career: FighterCareer) -> Dict[int, int]:
        record = career.record_for(self.league_competition_id)
        return {
            division: record.division_appearances(division) if record else 0
            for division in RANKED_DIVISIONS
        }

    def breakdown(self, career: FighterCareer) -> ScoreBreakdown:
        """Collect every term of the score formula for one fighter"""
        divisions = self._division_appearances(career)
        return ScoreBreakdown(
            win_percentage=round(career.overall_win_percentage, 2),
            league_titles=self._titles(career, self.league_competition_id),
            champions_cup_titles=self._titles(career, self.champions_cup_id),
            invicta_cup_titles=self._titles(career, self.invicta_cup_id),
            champions_cup_appearances=self._appearances(career, self.champions_cup_id),
            invicta_cup_appearances=self._appearances(career, self.invicta_cup_id),
            division_1_appearances=divisions[1],
            division_2_appearances=divisions[2],
            division_3_appearances=divisions[3],
            longest_win_streak=career.longest_win_streak,
        )

    def score(self, breakdown: ScoreBreakdown, win_percentage: Optional[float] = None) -> float:
        """
        Apply the weights to a breakdown.

        The breakdown stores win % rounded for display; pass the exact value
        as win_percentage so only the final score is rounded.
        """
        if win_percentage is None:
            win_percentage = breakdown.win_percentage
        w = self.weights
        score = (
            win_percentage / w['win_percentage_divisor']
            + breakdown.league_titles * w['league_title']
            + breakdown.champions_cup_titles * w['champions_cup_title']
            + breakdown.invicta_cup_titles * w['invicta_cup_title']
            + breakdown.champions_cup_appearances * w['champions_cup_appearance']
            + breakdown.invicta_cup_appearances * w['invicta_cup_appearance']
            + breakdown.division_1_appearances * w['division_1_appearance']
            + breakdown.division_2_appearances * w['division_2_appearance']
            + breakdown.division_3_appearances * w['division_3_appearance']
            + breakdown.longest_win_streak / w['win_streak_divisor']
        )
        return round(score, RankingWeights.SCORE_PRECISION)

    def calculate_score(self, career: FighterCareer) -> float:
        return self.score(self.breakdown(career), career.overall_win_percentage)

    @staticmethod
    def tie_break_key(entry: GlobalRankEntry) -> tuple:
        return (
            -entry.score,
            -entry.breakdown.win_percentage,
            -entry.breakdown.total_titles,
            entry.fighter_id,
        )

    def _titles_list(self, career: FighterCareer) -> tuple:
        return tuple(
            TitleCount(competition_id=record.competition_id, number_of_titles=record.total_titles)
            for record in career.competition_records
            if record.total_titles > 0
        )

    def _cup_appearances_list(self, career: FighterCareer) -> tuple:
        appearances = []
        for competition_id in (self.champions_cup_id, self.invicta_cup_id):
            count = self._appearances(career, competition_id)
            if count > 0:
                appearances.append(CupAppearance(competition_id=competition_id, appearances=count))
        return tuple(appearances)

    def _league_appearances_list(self, career: FighterCareer) -> tuple:
        divisions = tuple(
            DivisionAppearance(division=division, appearances=count)
            for division, count in self._division_appearances(career).items()
            if count > 0
        )
        if not divisions:
            return ()
        return (LeagueAppearance(competition_id=self.league_competition_id,
                                 division_appearances=divisions),)

    def rank(self, careers: Iterable[FighterCareer]) -> List[GlobalRankEntry]:
        """
        Score and rank every fighter.

        Args:
            careers: One career per fighter, including fighters without fights

        Returns:
            Entries sorted best first with ranks 1..N
        """
        unranked = []
        for career in careers:
            breakdown = self.breakdown(career)
            unranked.append(GlobalRankEntry(
                fighter_id=career.fighter_id,
                score=self.score(breakdown, career.overall_win_percentage),
                rank=0,
                breakdown=breakdown,
                titles=self._titles_list(career),
                cup_appearances=self._cup_appearances_list(career),
                league_appearances=self._league_appearances_list(career),
            ))

        ordered = sorted(unranked, key=self.tie_break_key)
        return [
            GlobalRankEntry(
                fighter_id=entry.fighter_id,
                score=entry.score,
                rank=index + 1,
                breakdown=entry.breakdown,
                titles=entry.titles,
                cup_appearances=entry.cup_appearances,
                league_appearances=entry.league_appearances,
            )
            for index, entry in enumerate(ordered)
        ]

    def recalculate(self, careers: Iterable[FighterCareer]) -> GlobalRankSnapshot:
        """
        Build a new, not yet persisted, ranking generation.

        The snapshot carries no version; the store assigns one when it
        promotes the snapshot to current.
        """
        return GlobalRankSnapshot(
            league_competition_id=self.league_competition_id,
            entries=tuple(self.rank(careers)),
        )
