"""
Default runtime configuration for the fight league engine.

The defaults equal the fallbacks in league.config and league.constants, so a
seeded database and an unseeded one score fights identically.

Run as a module to print the categories and seed the configured database:
    python -m league.services.seed_configurations
"""

import asyncio
import json
from collections import Counter
from typing import Dict

from league.config import Config
from league.constants import RankingWeights, StandingsConstants
from league.database.database import Database
from league.database.models import Configuration
from league.utils.streaks import StreakTracker

INITIAL_CONFIGS = {
    'standings.points_per_win': StandingsConstants.DEFAULT_POINTS_PER_WIN,
    'ranking.weights': RankingWeights.as_dict(),
    'ranking.lock_ttl_seconds': Config.RANKING_LOCK_TTL_SECONDS,
    'ranking.streak_scope': StreakTracker.GLOBAL_SCOPE,
}


async def seed_configurations(db: Database) -> int:
    """Write every default, replacing stored values. Returns the number written."""
    async with db.transaction() as session:
        for key, value in INITIAL_CONFIGS.items():
            await session.merge(Configuration(key=key, value=json.dumps(value)))
    return len(INITIAL_CONFIGS)


def get_categories_summary() -> Dict[str, int]:
    return dict(Counter(key.split('.', 1)[0] for key in INITIAL_CONFIGS if '.' in key))


async def _seed_default_database():
    db = Database()
    await db.initialize()
    try:
        print(f"Seeded {await seed_configurations(db)} configuration parameters")
    finally:
        await db.close()


if __name__ == "__main__":
    for category, count in get_categories_summary().items():
        print(f"{category}: {count}")
    asyncio.run(_seed_default_database())
