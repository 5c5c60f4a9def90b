"""
Result Operations Module

Records fight results and announces them on the event bus. The announcement
order matters because the bus handles events one after another:

- league fight: FIGHT_DECIDED (standings), then SEASON_DATA_CHANGED (streaks
  and histories, which read the standings just written)
- cup fight: SEASON_DATA_CHANGED first, so the completion check and any
  ranking recalculation triggered by CUP_FIGHT_DECIDED read fresh histories
"""

from typing import Optional

from league.data_models.fight import FightRecord
from league.services.event_bus import EventBus, EventType
from league.utils.logger import setup_logger

logger = setup_logger(__name__)


class ResultOperations:
    """Business logic for entering fight results."""

    def __init__(self, database, event_bus: Optional[EventBus] = None):
        """Initialize with database instance and the bus results are announced on"""
        self.db = database
        self.event_bus = event_bus
        self.logger = logger

    async def record_result(self, fight_id: int, winner_id: int) -> FightRecord:
        """
        Set the winner of a fight and emit the events that update derived data.

        Args:
            fight_id: Fight to decide
            winner_id: One of the two fighters

        Returns:
            The decided fight

        Raises:
            NotFoundError: If the fight does not exist
            InvalidStateError: If the winner is not a participant or the fight
                was already decided for the other fighter
        """
        fight = await self.db.record_fight_result(fight_id, winner_id)
        self.logger.info(f"Result recorded: {fight.fight_identifier} won by fighter {winner_id}")

        if self.event_bus is None:
            return fight

        payload = {
            'fight_id': fight.fight_id,
            'fight_identifier': fight.fight_identifier,
            'competition_id': fight.competition_id,
            'competition_season_id': fight.competition_season_id,
        }
        if fight.stage is None:
            events = (EventType.FIGHT_DECIDED, EventType.SEASON_DATA_CHANGED)
        else:
            events = (EventType.SEASON_DATA_CHANGED, EventType.CUP_FIGHT_DECIDED)

        for event_type in events:
            if not await self.event_bus.emit(event_type, payload):
                self.logger.warning(
                    f"{event_type.value} for {fight.fight_identifier} was dropped; "
                    f"run the rebuild commands to catch up"
                )
        return fight
