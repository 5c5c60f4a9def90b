"""
League Pipeline

Wires the standings, streak, completion and ranking services to the event
bus and exposes the three trigger entry points for direct calls:

- on_fight_decided(fight_id): standings of the fight's division
- on_season_data_changed(competition_id): full streak and history replay
- on_cup_fight_decided(cup_competition_id, fight_id): completion check and,
  once the league season and both cups are done, a global ranking run

Direct calls propagate errors to the caller. Event handlers run the same
units of work; their failures are logged by the bus.
"""

from typing import Optional

from league.data_models.fight import FightRecord
from league.data_models.ranking import GlobalRankSnapshot
from league.data_models.standings import StandingsSnapshot
from league.database.database import Database
from league.operations.result_operations import ResultOperations
from league.services.completion_service import CompletionService
from league.services.configuration import ConfigurationService
from league.services.event_bus import EventBus, EventType, LeagueEvent
from league.services.ranking_service import GlobalRankingService
from league.services.standings_service import StandingsService
from league.services.streak_service import StreakService
from league.utils.logger import setup_logger

logger = setup_logger(__name__)


class LeaguePipeline:
    """Event-driven standings, streak, completion and ranking pipeline."""

    def __init__(self, database: Database, event_bus: Optional[EventBus] = None,
                 config_service: Optional[ConfigurationService] = None,
                 redis_client=None, use_redis: bool = True):
        self.db = database
        self.event_bus = event_bus or EventBus()
        self.config_service = config_service

        self.standings = StandingsService(database, config_service)
        self.streaks = StreakService(database, config_service)
        self.completion = CompletionService(database)
        self.ranking = GlobalRankingService(database, config_service,
                                            redis_client=redis_client, use_redis=use_redis)
        self.results = ResultOperations(database, self.event_bus)

        self._subscribe()

    def _subscribe(self):
        self.event_bus.subscribe(EventType.FIGHT_DECIDED, self._handle_fight_decided)
        self.event_bus.subscribe(EventType.SEASON_DATA_CHANGED, self._handle_season_data_changed)
        self.event_bus.subscribe(EventType.CUP_FIGHT_DECIDED, self._handle_cup_fight_decided)
        self.event_bus.subscribe(EventType.SEASON_COMPLETED, self._handle_season_completed)
        self.event_bus.subscribe(EventType.RANKINGS_UPDATED, self._handle_rankings_updated)

    async def start(self):
        await self.event_bus.start()

    async def stop(self):
        await self.event_bus.stop()
        await self.ranking.close()

    async def wait_until_idle(self):
        await self.event_bus.wait_until_idle()

    # Direct entry points

    async def record_result(self, fight_id: int, winner_id: int) -> FightRecord:
        """Record a result; derived data is updated by the event handlers"""
        return await self.results.record_result(fight_id, winner_id)

    async def on_fight_decided(self, fight_id: int) -> Optional[StandingsSnapshot]:
        return await self.standings.on_fight_decided(fight_id)

    async def on_season_data_changed(self, competition_id: Optional[int] = None) -> int:
        return await self.streaks.on_season_data_changed(competition_id)

    async def on_cup_fight_decided(self, cup_competition_id: int,
                                   fight_id: Optional[int] = None) -> Optional[GlobalRankSnapshot]:
        """
        Run the completion gate for a cup season and rank fighters if it opens.

        Args:
            cup_competition_id: Id of the cup competition season
            fight_id: The decided cup fight, for logging

        Returns:
            The promoted ranking snapshot, or None if something is still pending
        """
        status = await self.completion.check_cup_fight(cup_competition_id)
        if status is None or not status.all_completed:
            logger.info(f"Cup fight {fight_id} decided, global ranking not triggered")
            return None
        return await self.ranking.recalculate(status.league_competition_id)

    # Event handlers

    async def _handle_fight_decided(self, event: LeagueEvent):
        await self.on_fight_decided(event.payload['fight_id'])

    async def _handle_season_data_changed(self, event: LeagueEvent):
        await self.on_season_data_changed(event.payload.get('competition_id'))

    async def _handle_cup_fight_decided(self, event: LeagueEvent):
        status = await self.completion.check_cup_fight(event.payload['competition_season_id'])
        if status is not None and status.all_completed:
            await self.event_bus.emit(EventType.SEASON_COMPLETED, {
                'league_season_id': status.league_season_id,
                'league_competition_id': status.league_competition_id,
                'season_number': status.season_number,
            })

    async def _handle_season_completed(self, event: LeagueEvent):
        snapshot = await self.ranking.recalculate(event.payload['league_competition_id'])
        await self.event_bus.emit(EventType.RANKINGS_UPDATED, {
            'version': snapshot.version,
            'snapshot_id': snapshot.snapshot_id,
            'total_fighters': snapshot.total_fighters,
        })

    async def _handle_rankings_updated(self, event: LeagueEvent):
        logger.info(f"Global rankings now at generation {event.payload['version']}")
