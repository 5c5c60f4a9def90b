"""
Shared fixtures: an in-memory database per test and a small, fully scheduled
season (one league division plus both linked cups).
"""

import os
import tempfile
import uuid

# Keep test runs from writing log files into the working tree
os.environ.setdefault('LOG_DIR', os.path.join(tempfile.gettempdir(), 'league_engine_test_logs'))

from dataclasses import dataclass, field
from typing import Dict

import pytest
from redis.exceptions import LockError, LockNotOwnedError

from league.database.database import Database
from league.database.models import CompetitionType


@pytest.fixture
async def db():
    database = Database('sqlite+aiosqlite://')
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
async def file_db(tmp_path):
    """SQLite file database, for tests that run sessions concurrently."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'league.db'}")
    await database.initialize()
    yield database
    await database.close()


@dataclass
class SeasonWorld:
    """Ids of everything created by the season fixture."""
    league_meta_id: int
    cc_meta_id: int
    ic_meta_id: int
    league_season_id: int
    cc_season_id: int
    ic_season_id: int
    fighters: Dict[str, int]
    fights: Dict[str, int] = field(default_factory=dict)

    # (identifier, winner name) in the order results are entered
    RESULTS = (
        ('IFC-S1-D1-R1-F1', 'A'),
        ('IFC-S1-D1-R1-F2', 'C'),
        ('IFC-S1-D1-R2-F1', 'A'),
        ('IFC-S1-D1-R2-F2', 'B'),
        ('IFC-S1-D1-R3-F1', 'A'),
        ('IFC-S1-D1-R3-F2', 'B'),
        ('CC-S1-SF-F1', 'A'),
        ('CC-S1-SF-F2', 'B'),
        ('CC-S1-FN-F1', 'A'),
        ('IC-S1-FN-F1', 'C'),
    )

    def winner_of(self, identifier: str) -> int:
        return self.fighters[dict(self.RESULTS)[identifier]]


async def build_season(database: Database) -> SeasonWorld:
    """
    Four fighters, a three round single division and two cups.

    Round robin: A beats everyone, B beats C and D, C beats D. A wins the
    Champions Cup over B, C wins the Invicta Cup over D. No fight is decided.
    """
    league_meta = await database.create_competition_meta('IFC', 'IFC League', CompetitionType.LEAGUE)
    cc_meta = await database.create_competition_meta('CC', 'Champions Cup', CompetitionType.CUP)
    ic_meta = await database.create_competition_meta('IC', 'Invicta Cup', CompetitionType.CUP)

    league = await database.create_competition(league_meta.id, 1)
    cc = await database.create_competition(cc_meta.id, 1, linked_league_season_id=league.id)
    ic = await database.create_competition(ic_meta.id, 1, linked_league_season_id=league.id)
    await database.create_division(league.id, 1, total_rounds=3)

    fighters = {}
    for name in ('A', 'B', 'C', 'D'):
        fighter = await database.create_fighter(name)
        fighters[name] = fighter.id
        await database.add_participant(league.id, fighter.id, division_number=1)
        await database.add_participant(cc.id, fighter.id)
    await database.add_participant(ic.id, fighters['C'])
    await database.add_participant(ic.id, fighters['D'])

    world = SeasonWorld(
        league_meta_id=league_meta.id,
        cc_meta_id=cc_meta.id,
        ic_meta_id=ic_meta.id,
        league_season_id=league.id,
        cc_season_id=cc.id,
        ic_season_id=ic.id,
        fighters=fighters,
    )

    schedule = (
        (league.id, 'IFC-S1-D1-R1-F1', 'A', 'B'),
        (league.id, 'IFC-S1-D1-R1-F2', 'C', 'D'),
        (league.id, 'IFC-S1-D1-R2-F1', 'A', 'C'),
        (league.id, 'IFC-S1-D1-R2-F2', 'B', 'D'),
        (league.id, 'IFC-S1-D1-R3-F1', 'A', 'D'),
        (league.id, 'IFC-S1-D1-R3-F2', 'B', 'C'),
        (cc.id, 'CC-S1-SF-F1', 'A', 'C'),
        (cc.id, 'CC-S1-SF-F2', 'B', 'D'),
        (cc.id, 'CC-S1-FN-F1', 'A', 'B'),
        (ic.id, 'IC-S1-FN-F1', 'C', 'D'),
    )
    for competition_id, identifier, first, second in schedule:
        fight = await database.create_fight(competition_id, identifier, fighters[first], fighters[second])
        world.fights[identifier] = fight.fight_id

    return world


@pytest.fixture
async def season(db):
    return await build_season(db)


@pytest.fixture
async def file_season(file_db):
    return await build_season(file_db)


class FakeLock:
    """Mirrors redis.asyncio.lock.Lock: token-owned, release compares and deletes in one step."""

    def __init__(self, client, name, timeout=None, blocking=True):
        self.client = client
        self.name = name
        self.timeout = timeout
        self.blocking = blocking
        self.token = None

    async def acquire(self):
        token = uuid.uuid4().hex.encode()
        if await self.client.set(self.name, token, ex=self.timeout, nx=True):
            self.token = token
            return True
        return False

    async def release(self):
        token, self.token = self.token, None
        if token is None:
            raise LockError("Cannot release an unlocked lock")
        if self.client.store.get(self.name) != token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.client.store[self.name]


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls the ranking lock makes."""

    def __init__(self):
        self.store = {}
        self.locks = []

    def lock(self, name, timeout=None, blocking=True):
        lock = FakeLock(self, name, timeout=timeout, blocking=blocking)
        self.locks.append(lock)
        return lock

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value.encode() if isinstance(value, str) else value
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis():
    return FakeRedis()
