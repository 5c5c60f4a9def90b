from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from league.constants import StandingsConstants
from league.data_models.fight import FightRecord
from league.data_models.standings import FighterStanding, StandingsSnapshot
from league.utils.exceptions import DataIntegrityError, InvalidStateError

class StandingsCalculator:
    """Handles cumulative per-fight standings for league divisions"""

    @staticmethod
    def sort_key(standing: FighterStanding) -> tuple:
        """
        Ordering of standings rows

        Points descending, then wins descending, then fewer fights first,
        then fighter id ascending so that every order is deterministic.
        """
        return (-standing.points, -standing.wins, standing.fights_count, standing.fighter_id)

    @staticmethod
    def rank_standings(rows: Iterable[FighterStanding]) -> tuple:
        """
        Sort rows and assign ranks 1..N

        Args:
            rows: Standings rows in any order

        Returns:
            Tuple of rows with rank and total_fighters_count filled in
        """
        ordered = sorted(rows, key=StandingsCalculator.sort_key)
        total = len(ordered)
        return tuple(
            replace(row, rank=index + 1, total_fighters_count=total)
            for index, row in enumerate(ordered)
        )

    @staticmethod
    def _validate_roster(roster: List[int]) -> None:
        if len(set(roster)) != len(roster):
            raise DataIntegrityError(f"roster contains duplicate fighters: {roster}")

    @staticmethod
    def _validate_fight(fight: FightRecord, roster_ids: set) -> None:
        if not fight.is_decided:
            raise InvalidStateError(fight.fight_identifier, "fight has no winner")
        if fight.fighter1_id == fight.fighter2_id:
            raise DataIntegrityError(f"fight '{fight.fight_identifier}' pits a fighter against themselves")
        if fight.winner_id not in fight.participants:
            raise InvalidStateError(fight.fight_identifier, "winner is not one of the two fighters")
        if fight.division is None:
            raise DataIntegrityError(f"fight '{fight.fight_identifier}' is not a league division fight")
        for fighter_id in fight.participants:
            if fighter_id not in roster_ids:
                raise DataIntegrityError(
                    f"fighter {fighter_id} of fight '{fight.fight_identifier}' is not on the "
                    f"roster of season {fight.season} division {fight.division}"
                )

    @staticmethod
    def compute_standings(previous: Optional[StandingsSnapshot], fight: FightRecord,
                          roster: Iterable[int], points_per_win: Optional[int] = None) -> StandingsSnapshot:
        """
        Fold one decided fight into the standings of its division

        Args:
            previous: Snapshot right before this fight, or None for the first fight
            fight: The decided fight
            roster: Every fighter of the division, including those without fights
            points_per_win: Points per win, defaults to StandingsConstants.DEFAULT_POINTS_PER_WIN

        Returns:
            New snapshot keyed by the fight's identifier

        Raises:
            InvalidStateError: If the fight has no winner
            DataIntegrityError: If the fight, roster and previous snapshot disagree
        """
        if points_per_win is None:
            points_per_win = StandingsConstants.DEFAULT_POINTS_PER_WIN

        roster = list(roster)
        StandingsCalculator._validate_roster(roster)
        roster_ids = set(roster)
        StandingsCalculator._validate_fight(fight, roster_ids)

        if previous is None:
            previous = StandingsSnapshot.baseline(fight.competition_id, fight.season, fight.division, roster)
        elif (previous.competition_id, previous.season, previous.division) != \
                (fight.competition_id, fight.season, fight.division):
            raise DataIntegrityError(
                f"previous snapshot belongs to competition {previous.competition_id} season "
                f"{previous.season} division {previous.division}, fight '{fight.fight_identifier}' does not"
            )

        rows: Dict[int, FighterStanding] = previous.by_fighter()
        unknown = set(rows) - roster_ids
        if unknown:
            raise DataIntegrityError(
                f"fighters {sorted(unknown)} appear in standings but not on the division roster"
            )
        for fighter_id in roster:
            if fighter_id not in rows:
                rows[fighter_id] = FighterStanding(fighter_id=fighter_id)

        # Only the two participants change, everyone else is carried forward
        for fighter_id in fight.participants:
            row = rows[fighter_id]
            wins = row.wins + (1 if fighter_id == fight.winner_id else 0)
            rows[fighter_id] = replace(
                row,
                fights_count=row.fights_count + 1,
                wins=wins,
                points=wins * points_per_win,
            )

        return StandingsSnapshot(
            competition_id=fight.competition_id,
            season=fight.season,
            division=fight.division,
            round=fight.round,
            fight_identifier=fight.fight_identifier,
            fight_id=fight.fight_id,
            standings=StandingsCalculator.rank_standings(rows.values()),
        )

    @staticmethod
    def replay_division(fights: Iterable[FightRecord], roster: Iterable[int],
                        points_per_win: Optional[int] = None) -> List[StandingsSnapshot]:
        """
        Rebuild every snapshot of a division from its fights

        Pending fights are skipped; decided fights are folded in chronological
        order, producing one snapshot per decided fight.

        Args:
            fights: Fights of a single division
            roster: Every fighter of the division
            points_per_win: Points per win

        Returns:
            Snapshots in fight order
        """
        roster = list(roster)
        decided = sorted((fight for fight in fights if fight.is_decided),
                         key=lambda fight: fight.chronological_key)

        snapshots: List[StandingsSnapshot] = []
        previous: Optional[StandingsSnapshot] = None
        for fight in decided:
            previous = StandingsCalculator.compute_standings(previous, fight, roster, points_per_win)
            snapshots.append(previous)
        return snapshots

    @staticmethod
    def final_positions(snapshot: StandingsSnapshot) -> Dict[int, int]:
        """
        Map each fighter to their rank in a division's final snapshot

        Args:
            snapshot: Snapshot of the division's last fight

        Returns:
            Dictionary of fighter id to final position
        """
        return {standing.fighter_id: standing.rank for standing in snapshot.standings}
