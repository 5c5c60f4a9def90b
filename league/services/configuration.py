"""
Runtime configuration for the league engine.

Values live as JSON in the configurations table and are cached in memory.
Every change writes an AuditLog row. Known keys are validated before they
are stored; the typed accessors fall back to league.config / league.constants
when a key has never been set.

Keys:
    standings.points_per_win   positive int
    ranking.weights            dict, a subset of RankingWeights.as_dict() keys
    ranking.lock_ttl_seconds   positive int
    ranking.streak_scope       "global" or "competition"
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select

from league.config import Config
from league.constants import RankingWeights
from league.database.models import AuditLog, Configuration
from league.services.base import BaseService
from league.utils.streaks import StreakTracker

logger = logging.getLogger(__name__)

STREAK_SCOPES = (StreakTracker.GLOBAL_SCOPE, StreakTracker.COMPETITION_SCOPE)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _weights(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    known = RankingWeights.as_dict()
    return all(
        key in known and isinstance(weight, (int, float)) and weight >= 0
        for key, weight in value.items()
    ) and all(value.get(divisor, 1) > 0 for divisor in ('win_percentage_divisor', 'win_streak_divisor'))


VALIDATORS: Dict[str, Callable[[Any], bool]] = {
    'standings.points_per_win': _positive_int,
    'ranking.weights': _weights,
    'ranking.lock_ttl_seconds': _positive_int,
    'ranking.streak_scope': lambda value: value in STREAK_SCOPES,
}


class ConfigurationService(BaseService):
    """Cached, audited engine configuration."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def load_all(self):
        """Replace the cache with every stored value; unreadable rows are skipped."""
        loaded = {}
        async with self.get_session() as session:
            rows = (await session.execute(select(Configuration))).scalars().all()

        for row in rows:
            try:
                loaded[row.key] = json.loads(row.value)
            except json.JSONDecodeError:
                logger.warning(f"Configuration '{row.key}' is not valid JSON, ignoring it")

        self._cache = loaded
        logger.info(f"Loaded {len(self._cache)} configuration parameters")

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    async def set(self, key: str, value: Any, user_id: Optional[int] = None):
        """
        Store a value and record the change.

        Args:
            key: Configuration key
            value: JSON-serialisable value
            user_id: Operator making the change, None for automated changes

        Raises:
            ValueError: If a known key receives a value the engine cannot use
        """
        validator = VALIDATORS.get(key)
        if validator is not None and not validator(value):
            raise ValueError(f"Invalid value for '{key}': {value!r}")

        async with self.get_session() as session:
            row = (await session.execute(
                select(Configuration).where(Configuration.key == key)
            )).scalar_one_or_none()

            previous = None
            if row is None:
                session.add(Configuration(key=key, value=json.dumps(value)))
            else:
                try:
                    previous = json.loads(row.value)
                except json.JSONDecodeError:
                    previous = {"error": "invalid JSON", "raw": row.value}
                row.value = json.dumps(value)

            session.add(AuditLog(
                user_id=user_id,
                action='config_set',
                details=json.dumps({'key': key, 'old_value': previous, 'new_value': value})
            ))

        logger.info(f"Configuration '{key}' set to {value!r} by {user_id or 'system'}")
        await self.load_all()

    def list_all(self) -> Dict[str, Any]:
        return self._cache.copy()

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """Values under '<category>.' with the prefix stripped"""
        prefix = f"{category}."
        return {
            key[len(prefix):]: value
            for key, value in self._cache.items()
            if key.startswith(prefix)
        }

    # Typed accessors

    def points_per_win(self) -> int:
        return int(self.get('standings.points_per_win', Config.POINTS_PER_WIN))

    def ranking_weights(self) -> Optional[Dict[str, float]]:
        return self.get('ranking.weights')

    def lock_ttl_seconds(self) -> int:
        return int(self.get('ranking.lock_ttl_seconds', Config.RANKING_LOCK_TTL_SECONDS))

    def streak_scope(self) -> str:
        return self.get('ranking.streak_scope', STREAK_SCOPES[0])
