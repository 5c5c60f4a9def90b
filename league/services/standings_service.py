"""
Standings service.

Keeps the per-fight standings ledger of every league division up to date.
Snapshots of one division are written strictly one after another; different
divisions are processed in parallel.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from league.config import Config
from league.data_models.fight import FightRecord
from league.data_models.standings import StandingsSnapshot
from league.database.database import Database
from league.services.base import BaseService
from league.services.configuration import ConfigurationService
from league.utils.exceptions import InvalidStateError
from league.utils.logger import setup_logger
from league.utils.standings import StandingsCalculator

logger = setup_logger(__name__)

DivisionKey = Tuple[int, int, int]


class StandingsService(BaseService):
    """Applies decided fights to division standings."""

    def __init__(self, database: Database, config_service: Optional[ConfigurationService] = None):
        super().__init__(database.session_factory)
        self.database = database
        self.config_service = config_service
        self._division_locks: Dict[DivisionKey, asyncio.Lock] = {}

    @property
    def points_per_win(self) -> int:
        if self.config_service:
            return self.config_service.points_per_win()
        return Config.POINTS_PER_WIN

    def _division_lock(self, competition_id: int, season: int, division: int) -> asyncio.Lock:
        key = (competition_id, season, division)
        if key not in self._division_locks:
            self._division_locks[key] = asyncio.Lock()
        return self._division_locks[key]

    async def on_fight_decided(self, fight_id: int) -> Optional[StandingsSnapshot]:
        """
        Append the standings snapshot for a newly decided league fight.

        Safe to call again for the same fight: the existing snapshot is
        returned. A fight decided after a chronologically later one of the
        same division triggers a rebuild of the whole division.

        Args:
            fight_id: Id of the decided fight

        Returns:
            Snapshot as of this fight, or None for cup fights

        Raises:
            InvalidStateError: If the fight has no winner
            DataIntegrityError: If a participant is not on the division roster
        """
        fight = await self.database.get_fight(fight_id)
        if not fight.is_decided:
            raise InvalidStateError(fight.fight_identifier, "fight has no winner")
        if fight.division is None:
            logger.debug(f"Fight {fight.fight_identifier} is a cup fight, no standings to update")
            return None

        async with self._division_lock(fight.competition_id, fight.season, fight.division):
            existing = await self.database.get_standings_snapshot_for_fight(fight_id)
            if existing is not None:
                logger.info(f"Standings for {fight.fight_identifier} already recorded")
                return existing

            previous = await self.database.get_latest_standings_snapshot(
                fight.competition_id, fight.season, fight.division
            )
            if previous is not None and await self._is_out_of_order(previous, fight):
                logger.warning(
                    f"Fight {fight.fight_identifier} precedes {previous.fight_identifier}, "
                    f"rebuilding season {fight.season} division {fight.division}"
                )
                snapshots = await self._rebuild(fight.competition_id, fight.season, fight.division)
                return next(s for s in snapshots if s.fight_id == fight.fight_id)

            roster = await self.database.get_fighter_roster(
                fight.competition_id, fight.season, fight.division
            )
            snapshot = StandingsCalculator.compute_standings(previous, fight, roster, self.points_per_win)
            await self.execute_with_retry(
                lambda: self.database.save_standings_snapshot(snapshot),
                description=f"saving standings for {fight.fight_identifier}"
            )

        leader = snapshot.leader()
        logger.info(
            f"Standings saved for {fight.fight_identifier}: "
            f"leader fighter {leader.fighter_id} on {leader.points} points"
        )
        return snapshot

    async def _is_out_of_order(self, previous: StandingsSnapshot, fight: FightRecord) -> bool:
        if previous.fight_id is None:
            return False
        previous_fight = await self.database.get_fight(previous.fight_id)
        return fight.chronological_key < previous_fight.chronological_key

    async def rebuild_division(self, competition_id: int, season: int, division: int) -> List[StandingsSnapshot]:
        """
        Recompute every snapshot of a division from its decided fights.

        Args:
            competition_id: League competition meta id
            season: Season number
            division: Division number

        Returns:
            The rebuilt snapshots in fight order
        """
        async with self._division_lock(competition_id, season, division):
            return await self._rebuild(competition_id, season, division)

    async def _rebuild(self, competition_id: int, season: int, division: int) -> List[StandingsSnapshot]:
        fights = await self.database.list_fights(competition_id, season, division)
        roster = await self.database.get_fighter_roster(competition_id, season, division)
        snapshots = StandingsCalculator.replay_division(fights, roster, self.points_per_win)
        await self.database.replace_standings_snapshots(competition_id, season, division, snapshots)
        logger.info(
            f"Rebuilt {len(snapshots)} standings snapshots for competition {competition_id} "
            f"season {season} division {division}"
        )
        return snapshots
