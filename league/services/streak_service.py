"""
Streak service.

Regenerates streaks, opponent histories and competition histories from every
decided fight, then swaps the new generation in with a compare-and-swap on
the generation version. Readers only ever see a complete generation.
"""

import asyncio
from typing import Optional

from league.config import Config
from league.data_models.streaks import FighterStreakState
from league.database.database import Database
from league.services.base import BaseService
from league.services.configuration import ConfigurationService
from league.utils.competition_history import CompetitionHistoryBuilder
from league.utils.logger import setup_logger
from league.utils.streaks import StreakTracker

logger = setup_logger(__name__)


class StreakService(BaseService):
    """Full-replay streak regeneration."""

    def __init__(self, database: Database, config_service: Optional[ConfigurationService] = None):
        super().__init__(database.session_factory)
        self.database = database
        self.config_service = config_service
        self._replay_lock = asyncio.Lock()

    async def on_season_data_changed(self, competition_id: Optional[int] = None) -> int:
        """
        Replay every decided fight from an empty state and promote the result.

        Args:
            competition_id: Competition whose data changed, for logging only;
                a replay always covers all competitions so cross-competition
                streaks stay continuous

        Returns:
            Version of the promoted generation

        Raises:
            FightOrderError: If the fight source returns fights out of order
            SnapshotConflictError: If another process promoted a generation meanwhile
        """
        async with self._replay_lock:
            if self.config_service:
                scope = self.config_service.streak_scope()
                points_per_win = self.config_service.points_per_win()
            else:
                scope, points_per_win = StreakTracker.GLOBAL_SCOPE, Config.POINTS_PER_WIN

            expected_version = await self.database.get_current_streak_version()
            fights = await self.database.list_all_decided_fights()
            states = StreakTracker(scope=scope).replay(fights)

            final_standings = await self.database.list_final_standings()
            participations = await self.database.list_participations()
            careers = CompetitionHistoryBuilder(points_per_win).build(
                fights, final_standings, participations, states
            )

            version = await self.database.save_streak_state(
                states, careers, expected_version, scope=scope, fights_processed=len(fights)
            )

        logger.info(
            f"Streak generation {version} promoted after change in competition {competition_id}: "
            f"{len(fights)} fights, {len(states)} fighters, {scope} scope"
        )
        return version

    async def get_fighter_state(self, fighter_id: int) -> FighterStreakState:
        states = await self.database.get_current_streak_state(fighter_id)
        return states.get(fighter_id, FighterStreakState(fighter_id=fighter_id))
