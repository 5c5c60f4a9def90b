"""
Global ranking service.

Recalculates the ranking of all fighters once a league season and both of its
cups are complete. Recalculation is a single-writer critical section:

- an asyncio.Lock serializes callers inside this process
- a Redis SET NX EX lock, when Redis is reachable, keeps other processes out
- the promotion itself is a compare-and-swap on the current ranking version,
  so even an unlocked writer can never leave two generations current
"""

import asyncio
from typing import List, Optional

from league.config import Config
from league.constants import LockConstants
from league.data_models.ranking import FighterCareer, GlobalRankSnapshot
from league.database.database import Database
from league.services.base import BaseService
from league.services.configuration import ConfigurationService
from league.utils.exceptions import RankingInProgressError
from league.utils.logger import setup_logger
from league.utils.ranking import RankingCalculator
from league.utils.redis_utils import RedisLock, connect

logger = setup_logger(__name__)


class GlobalRankingService(BaseService):
    """Builds and promotes global ranking generations."""

    def __init__(self, database: Database, config_service: Optional[ConfigurationService] = None,
                 redis_client=None, use_redis: bool = True):
        """
        Initialize the ranking service.

        Args:
            database: Fight source and snapshot store
            config_service: Source of ranking weights and the lock TTL
            redis_client: Pre-built async Redis client for the distributed lock
            use_redis: Set False to rely on the in-process lock only
        """
        super().__init__(database.session_factory)
        self.database = database
        self.config_service = config_service
        self.redis_client = redis_client
        self._redis_checked = redis_client is not None or not use_redis
        self._lock = asyncio.Lock()

    async def _get_redis_client(self):
        """Get the Redis client for distributed locking. Returns None if Redis is unavailable."""
        if not self._redis_checked:
            self._redis_checked = True
            self.redis_client = await connect()
            if self.redis_client is None:
                logger.warning("Redis unavailable. Global ranking will run with in-process locking only.")
        return self.redis_client

    async def _acquire_distributed_lock(self) -> Optional[RedisLock]:
        redis_client = await self._get_redis_client()
        if redis_client is None:
            return None

        ttl = self.config_service.lock_ttl_seconds() if self.config_service else Config.RANKING_LOCK_TTL_SECONDS
        lock = RedisLock(redis_client, LockConstants.RANKING_LOCK_KEY, ttl)
        if not await lock.acquire():
            logger.info("Global ranking calculation throttled - lock exists")
            raise RankingInProgressError()
        return lock

    async def _load_careers(self) -> List[FighterCareer]:
        careers = await self.database.get_current_careers()
        fighters = await self.database.list_fighters()
        return [careers.get(fighter.id, FighterCareer(fighter_id=fighter.id)) for fighter in fighters]

    async def _build_calculator(self, league_competition_id: int) -> RankingCalculator:
        champions_cup = await self.database.get_competition_meta_by_code(Config.CHAMPIONS_CUP_CODE)
        invicta_cup = await self.database.get_competition_meta_by_code(Config.INVICTA_CUP_CODE)
        return RankingCalculator(
            league_competition_id,
            champions_cup.id if champions_cup else None,
            invicta_cup.id if invicta_cup else None,
            weights=self.config_service.ranking_weights() if self.config_service else None,
        )

    async def recalculate(self, league_competition_id: int) -> GlobalRankSnapshot:
        """
        Rank every fighter and promote the result as the current generation.

        Args:
            league_competition_id: Competition meta id of the league

        Returns:
            The promoted snapshot, with version and id filled in

        Raises:
            RankingInProgressError: If another process holds the ranking lock
            SnapshotConflictError: If another writer promoted a generation meanwhile
        """
        async with self._lock:
            distributed_lock = await self._acquire_distributed_lock()
            try:
                expected_version = await self.database.get_current_global_rank_version()
                calculator = await self._build_calculator(league_competition_id)
                snapshot = calculator.recalculate(await self._load_careers())
                saved = await self.database.save_global_rank_snapshot(snapshot, expected_version)
            finally:
                if distributed_lock is not None:
                    await distributed_lock.release()

        top = ', '.join(f"#{entry.rank} fighter {entry.fighter_id} ({entry.score})" for entry in saved.top(3))
        logger.info(
            f"Global ranking generation {saved.version} promoted for {saved.total_fighters} fighters: {top}"
        )
        return saved

    async def get_current(self) -> Optional[GlobalRankSnapshot]:
        return await self.database.get_current_global_rank()

    async def close(self):
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
