"""
Competition history builder.

Derives each fighter's per-competition record (totals, season appearances,
final positions, cup results and titles) from decided fights and the final
standings of finished divisions. The result is the career input read by the
global ranking score.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

from league.constants import CupResults, StandingsConstants
from league.data_models.fight import FightRecord
from league.data_models.ranking import (
    CompetitionRecord, FighterCareer, Participation, SeasonDetail, TitleDetail
)
from league.data_models.standings import StandingsSnapshot
from league.data_models.streaks import FighterStreakState
from league.utils.fight_identifier import cup_result_for_stage, is_final_stage_code, stage_order


def calculate_win_percentage(wins: int, total_fights: int) -> float:
    """Win percentage rounded to two decimals, 0 when no fights were fought"""
    if total_fights == 0:
        return 0.0
    return round(wins / total_fights * 100, 2)


@dataclass
class _SeasonTally:
    division: Optional[int] = None
    competition_season_id: Optional[int] = None
    fights: int = 0
    wins: int = 0
    last_stage: Optional[str] = None
    won_final: bool = False
    is_cup: bool = False


@dataclass
class _FighterTally:
    seasons: Dict[Tuple[int, int], _SeasonTally] = field(default_factory=dict)

    def season(self, competition_id: int, season: int) -> _SeasonTally:
        key = (competition_id, season)
        if key not in self.seasons:
            self.seasons[key] = _SeasonTally()
        return self.seasons[key]


class CompetitionHistoryBuilder:
    """Builds FighterCareer records from fights and final standings."""

    def __init__(self, points_per_win: Optional[int] = None):
        self.points_per_win = points_per_win or StandingsConstants.DEFAULT_POINTS_PER_WIN

    def build(
        self,
        fights: Iterable[FightRecord],
        final_standings: Iterable[StandingsSnapshot] = (),
        participants: Iterable[Participation] = (),
        streak_states: Optional[Mapping[int, FighterStreakState]] = None,
    ) -> Dict[int, FighterCareer]:
        """
        Build careers for every fighter that fought or was entered in a season.

        Args:
            fights: Fights of every competition; pending fights are ignored
            final_standings: Last snapshot of every finished league division
            participants: Roster and cup entries, so fighters without fights still appear
            streak_states: Replay output used for the longest win streak

        Returns:
            Mapping of fighter id to FighterCareer
        """
        tallies: Dict[int, _FighterTally] = {}

        def tally_for(fighter_id: int) -> _FighterTally:
            if fighter_id not in tallies:
                tallies[fighter_id] = _FighterTally()
            return tallies[fighter_id]

        for entry in participants:
            season = tally_for(entry.fighter_id).season(entry.competition_id, entry.season)
            season.division = entry.division
            season.is_cup = entry.division is None
            season.competition_season_id = entry.competition_season_id

        for fight in fights:
            if not fight.is_decided:
                continue
            for fighter_id in fight.participants:
                season = tally_for(fighter_id).season(fight.competition_id, fight.season)
                season.is_cup = fight.stage is not None
                if fight.division is not None:
                    season.division = fight.division
                if fight.competition_season_id is not None:
                    season.competition_season_id = fight.competition_season_id
                season.fights += 1
                won = fight.winner_id == fighter_id
                if won:
                    season.wins += 1
                if season.is_cup:
                    if season.last_stage is None or stage_order(fight.stage) >= stage_order(season.last_stage):
                        season.last_stage = fight.stage
                    if won and is_final_stage_code(fight.stage):
                        season.won_final = True

        final_positions: Dict[Tuple[int, int, int], Dict[int, int]] = {
            (snapshot.competition_id, snapshot.season, snapshot.division):
                {standing.fighter_id: standing.rank for standing in snapshot.standings}
            for snapshot in final_standings
        }

        careers: Dict[int, FighterCareer] = {}
        for fighter_id, tally in tallies.items():
            longest = 0
            if streak_states and fighter_id in streak_states:
                longest = streak_states[fighter_id].longest_win_streak
            careers[fighter_id] = FighterCareer(
                fighter_id=fighter_id,
                competition_records=self._competition_records(fighter_id, tally, final_positions),
                longest_win_streak=longest,
            )
        return careers

    def _competition_records(self, fighter_id: int, tally: _FighterTally,
                             final_positions: Dict[Tuple[int, int, int], Dict[int, int]]
                             ) -> Tuple[CompetitionRecord, ...]:
        details_by_competition: Dict[int, list] = {}
        titles_by_competition: Dict[int, list] = {}

        for (competition_id, season_number), season in sorted(tally.seasons.items()):
            detail, title = self._season_detail(fighter_id, competition_id, season_number,
                                                season, final_positions)
            details_by_competition.setdefault(competition_id, []).append(detail)
            if title is not None:
                titles_by_competition.setdefault(competition_id, []).append(title)

        records = []
        for competition_id, details in details_by_competition.items():
            total_fights = sum(detail.fights for detail in details)
            total_wins = sum(detail.wins for detail in details)
            records.append(CompetitionRecord(
                competition_id=competition_id,
                total_fights=total_fights,
                total_wins=total_wins,
                total_losses=total_fights - total_wins,
                win_percentage=calculate_win_percentage(total_wins, total_fights),
                season_details=tuple(details),
                titles=tuple(titles_by_competition.get(competition_id, ())),
            ))
        return tuple(records)

    def _season_detail(self, fighter_id: int, competition_id: int, season_number: int,
                       season: _SeasonTally,
                       final_positions: Dict[Tuple[int, int, int], Dict[int, int]]):
        title = None
        final_position = None
        cup_result = None
        points = None

        if season.is_cup:
            if season.won_final:
                cup_result = CupResults.CHAMPION
                title = TitleDetail(season=season_number,
                                    competition_season_id=season.competition_season_id)
            elif season.last_stage is not None:
                cup_result = cup_result_for_stage(season.last_stage)
            else:
                cup_result = CupResults.ROUND_1
        else:
            points = season.wins * self.points_per_win
            positions = final_positions.get((competition_id, season_number, season.division))
            if positions is not None:
                final_position = positions.get(fighter_id)
                if final_position == 1:
                    title = TitleDetail(season=season_number, division=season.division,
                                        competition_season_id=season.competition_season_id)

        detail = SeasonDetail(
            season=season_number,
            division=None if season.is_cup else season.division,
            fights=season.fights,
            wins=season.wins,
            losses=season.fights - season.wins,
            points=points,
            win_percentage=calculate_win_percentage(season.wins, season.fights),
            final_position=final_position,
            cup_result=cup_result,
            competition_season_id=season.competition_season_id,
        )
        return detail, title
