import asyncio

import pytest

from league.operations.pipeline import LeaguePipeline
from league.services.configuration import ConfigurationService
from league.services.event_bus import EventBus, EventType
from league.utils.exceptions import InvalidStateError


@pytest.fixture
async def pipeline(db):
    league_pipeline = LeaguePipeline(db, event_bus=EventBus(), use_redis=False)
    await league_pipeline.start()
    yield league_pipeline
    await league_pipeline.stop()


async def test_results_flow_through_to_global_ranking(db, season, pipeline):
    versions_seen = []

    async def record_version(event):
        versions_seen.append(event.payload['version'])

    pipeline.event_bus.subscribe(EventType.RANKINGS_UPDATED, record_version)

    for identifier, winner in season.RESULTS:
        await pipeline.record_result(season.fights[identifier], season.fighters[winner])
        await pipeline.wait_until_idle()
        if identifier == 'CC-S1-FN-F1':
            # Champions Cup done, Invicta Cup still pending
            assert await db.get_current_global_rank_version() is None

    assert pipeline.event_bus.failed_events == []

    final = await db.get_latest_standings_snapshot(season.league_meta_id, 1, 1)
    assert final.fight_identifier == 'IFC-S1-D1-R3-F2'
    assert [standing.points for standing in final.standings] == [9, 6, 3, 0]
    assert final.leader().fighter_id == season.fighters['A']

    assert await db.get_current_streak_version() == len(season.RESULTS)
    streaks = await pipeline.streaks.get_fighter_state(season.fighters['B'])
    assert [(streak.type.value, streak.count) for streak in streaks.streaks] == [
        ('lose', 1), ('win', 3), ('lose', 1)
    ]

    assert versions_seen == [1]
    assert await db.count_current_global_ranks() == 1
    ranking = await pipeline.ranking.get_current()
    assert ranking.entries[0].fighter_id == season.fighters['A']

    fighter = await db.get_fighter(season.fighters['A'])
    assert fighter.global_rank_position == 1
    assert fighter.global_rank_score == pytest.approx(24.0)
    assert fighter.global_rank_id == ranking.snapshot_id


async def test_invalid_result_emits_nothing(db, season, pipeline):
    fight_id = season.fights['IFC-S1-D1-R1-F1']
    with pytest.raises(InvalidStateError):
        await pipeline.record_result(fight_id, season.fighters['C'])

    await pipeline.wait_until_idle()
    assert await db.get_latest_standings_snapshot(season.league_meta_id, 1, 1) is None
    assert await db.get_current_streak_version() is None


async def test_direct_entry_points(db, season):
    pipeline = LeaguePipeline(db, use_redis=False)

    for identifier, winner in season.RESULTS[:-1]:
        fight = await db.record_fight_result(season.fights[identifier], season.fighters[winner])
        snapshot = await pipeline.on_fight_decided(fight.fight_id)
        if fight.stage is None:
            assert snapshot.fight_identifier == identifier
        else:
            assert snapshot is None
    await pipeline.on_season_data_changed(season.league_meta_id)

    assert await pipeline.on_cup_fight_decided(season.cc_season_id, season.fights['CC-S1-FN-F1']) is None

    await db.record_fight_result(season.fights['IC-S1-FN-F1'], season.fighters['C'])
    await pipeline.on_season_data_changed(season.ic_meta_id)
    ranking = await pipeline.on_cup_fight_decided(season.ic_season_id, season.fights['IC-S1-FN-F1'])

    assert ranking.version == 1
    assert ranking.total_fighters == 4
    await pipeline.stop()


async def test_standings_are_idempotent_per_fight(db, season):
    pipeline = LeaguePipeline(db, use_redis=False)
    fight_id = season.fights['IFC-S1-D1-R1-F1']
    await db.record_fight_result(fight_id, season.fighters['A'])

    first = await pipeline.on_fight_decided(fight_id)
    second = await pipeline.on_fight_decided(fight_id)

    assert first == second
    assert len(await db.list_standings_snapshots(season.league_meta_id, 1, 1)) == 1


async def test_late_result_rebuilds_the_division(db, season):
    pipeline = LeaguePipeline(db, use_redis=False)
    later = season.fights['IFC-S1-D1-R2-F1']
    earlier = season.fights['IFC-S1-D1-R1-F1']

    await db.record_fight_result(later, season.fighters['A'])
    await pipeline.on_fight_decided(later)
    await db.record_fight_result(earlier, season.fighters['A'])
    snapshot = await pipeline.on_fight_decided(earlier)

    assert snapshot.fight_identifier == 'IFC-S1-D1-R1-F1'
    snapshots = await db.list_standings_snapshots(season.league_meta_id, 1, 1)
    assert [s.fight_identifier for s in snapshots] == ['IFC-S1-D1-R1-F1', 'IFC-S1-D1-R2-F1']
    assert snapshots[-1].get(season.fighters['A']).wins == 2


async def test_undecided_fight_is_rejected(db, season):
    pipeline = LeaguePipeline(db, use_redis=False)
    with pytest.raises(InvalidStateError):
        await pipeline.on_fight_decided(season.fights['IFC-S1-D1-R1-F1'])


async def test_rebuild_division_matches_incremental_updates(db, season):
    pipeline = LeaguePipeline(db, use_redis=False)
    league_results = [(i, w) for i, w in season.RESULTS if i.startswith('IFC')]
    for identifier, winner in league_results:
        await db.record_fight_result(season.fights[identifier], season.fighters[winner])
        await pipeline.on_fight_decided(season.fights[identifier])
    incremental = await db.list_standings_snapshots(season.league_meta_id, 1, 1)

    rebuilt = await pipeline.standings.rebuild_division(season.league_meta_id, 1, 1)

    assert rebuilt == incremental
    assert await db.list_standings_snapshots(season.league_meta_id, 1, 1) == incremental


async def test_configured_points_per_win_reach_the_standings(db, season):
    config = ConfigurationService(db.session_factory)
    await config.set('standings.points_per_win', 2)
    pipeline = LeaguePipeline(db, config_service=config, use_redis=False)

    for identifier, winner in season.RESULTS:
        if identifier.startswith('IFC'):
            await db.record_fight_result(season.fights[identifier], season.fighters[winner])
            await pipeline.on_fight_decided(season.fights[identifier])

    final = await db.get_latest_standings_snapshot(season.league_meta_id, 1, 1)
    assert [standing.points for standing in final.standings] == [6, 4, 2, 0]


async def test_concurrent_updates_of_one_division_stay_sequential(file_db, file_season):
    pipeline = LeaguePipeline(file_db, use_redis=False)
    league_results = [(i, w) for i, w in file_season.RESULTS if i.startswith('IFC')]
    for identifier, winner in league_results:
        await file_db.record_fight_result(file_season.fights[identifier], file_season.fighters[winner])

    await asyncio.gather(*(
        pipeline.on_fight_decided(file_season.fights[identifier])
        for identifier, _ in reversed(league_results)
    ))

    snapshots = await file_db.list_standings_snapshots(file_season.league_meta_id, 1, 1)
    assert [s.fight_identifier for s in snapshots] == [identifier for identifier, _ in league_results]
    for fights_decided, snapshot in enumerate(snapshots, start=1):
        assert sum(standing.fights_count for standing in snapshot.standings) == 2 * fights_decided
        assert sum(standing.wins for standing in snapshot.standings) == fights_decided
    assert [standing.points for standing in snapshots[-1].standings] == [9, 6, 3, 0]


async def test_concurrent_calls_for_one_fight_save_one_snapshot(file_db, file_season):
    pipeline = LeaguePipeline(file_db, use_redis=False)
    fight_id = file_season.fights['IFC-S1-D1-R1-F1']
    await file_db.record_fight_result(fight_id, file_season.fighters['A'])

    first, second = await asyncio.gather(pipeline.on_fight_decided(fight_id), pipeline.on_fight_decided(fight_id))

    assert first == second
    assert len(await file_db.list_standings_snapshots(file_season.league_meta_id, 1, 1)) == 1
