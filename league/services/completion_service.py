"""
Completion service.

Answers whether a league season and the two cup seasons linked to it have
all finished. Not being finished is the normal state and never an error.
"""

from typing import Optional

from league.config import Config
from league.data_models.completion import (
    CompetitionCompletionState, CompetitionKind, CompletionStatus
)
from league.database.database import Database
from league.database.models import Competition
from league.services.base import BaseService
from league.utils.completion import CompletionDetector
from league.utils.logger import setup_logger

logger = setup_logger(__name__)


class CompletionService(BaseService):
    """Completion checks for a league season and its linked cups."""

    def __init__(self, database: Database):
        super().__init__(database.session_factory)
        self.database = database

    async def league_state(self, league_season_id: int) -> CompetitionCompletionState:
        divisions = await self.database.list_divisions(league_season_id)
        fights = await self.database.list_season_fights(league_season_id)
        return CompetitionCompletionState(
            kind=CompetitionKind.LEAGUE,
            completed=CompletionDetector.is_league_completed(divisions, fights),
            competition_season_id=league_season_id,
        )

    async def cup_state(self, cup_season: Optional[Competition]) -> CompetitionCompletionState:
        """A cup season that does not exist yet counts as incomplete"""
        if cup_season is None:
            return CompetitionCompletionState(kind=CompetitionKind.CUP, completed=False)
        fights = await self.database.list_season_fights(cup_season.id)
        return CompetitionCompletionState(
            kind=CompetitionKind.CUP,
            completed=CompletionDetector.is_cup_completed(fights),
            competition_season_id=cup_season.id,
        )

    async def check_completion(self, league_season_id: int) -> CompletionStatus:
        """
        Check the league season and both linked cup seasons.

        Args:
            league_season_id: Id of the league competition season

        Returns:
            CompletionStatus with a reason naming whatever is still pending

        Raises:
            NotFoundError: If the league season does not exist
        """
        league = await self.database.get_competition(league_season_id)
        league_state = await self.league_state(league_season_id)

        champions_cup = await self.database.find_linked_cup_season(league_season_id, Config.CHAMPIONS_CUP_CODE)
        invicta_cup = await self.database.find_linked_cup_season(league_season_id, Config.INVICTA_CUP_CODE)
        cc_state = await self.cup_state(champions_cup)
        ic_state = await self.cup_state(invicta_cup)

        status = CompletionDetector.build_status(
            league_state.completed,
            cc_state.completed,
            ic_state.completed,
            league_name=league.meta.code,
            season_number=league.season_number,
            league_season_id=league_season_id,
            league_competition_id=league.competition_meta_id,
            cc_season_id=cc_state.competition_season_id,
            ic_season_id=ic_state.competition_season_id,
        )
        logger.info(f"Season {league.season_number} completion: {status.reason}")
        return status

    async def check_cup_fight(self, cup_season_id: int) -> Optional[CompletionStatus]:
        """
        Completion check run after a cup fight was decided.

        Skips the full check when the cup is not linked to a league season
        or is itself not finished yet.

        Returns:
            None when short-circuited, otherwise the full CompletionStatus
        """
        cup = await self.database.get_competition(cup_season_id)
        if cup.linked_league_season_id is None:
            logger.info(f"Cup season {cup_season_id} is not linked to a league season")
            return None

        cup_state = await self.cup_state(cup)
        if not cup_state.completed:
            logger.debug(f"Cup season {cup_season_id} not completed yet")
            return None

        return await self.check_completion(cup.linked_league_season_id)

    async def should_trigger_ranking(self, cup_season_id: int) -> bool:
        status = await self.check_cup_fight(cup_season_id)
        return status is not None and status.all_completed
