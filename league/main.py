import argparse
import asyncio
import sys
from typing import Optional

from league.config import Config
from league.database.database import Database
from league.operations.pipeline import LeaguePipeline
from league.services.configuration import ConfigurationService
from league.services.seed_configurations import seed_configurations
from league.utils.exceptions import EngineException
from league.utils.logger import setup_logger

logger = setup_logger(__name__)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='league',
        description='Fight league standings, streak and ranking engine'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init-db', help='Create all tables')
    subparsers.add_parser('seed-config', help='Write default runtime configuration')

    rebuild = subparsers.add_parser('rebuild-standings', help='Recompute every snapshot of a division')
    rebuild.add_argument('--competition', type=int, required=True, help='League competition meta id')
    rebuild.add_argument('--season', type=int, required=True)
    rebuild.add_argument('--division', type=int, required=True)

    subparsers.add_parser('replay-streaks', help='Regenerate streaks and competition histories')

    completion = subparsers.add_parser('check-completion', help='Report league and cup completion')
    completion.add_argument('--league-season', type=int, required=True, help='League season id')

    rankings = subparsers.add_parser('recalculate-rankings', help='Promote a new global ranking')
    rankings.add_argument('--league-meta', type=int, required=True, help='League competition meta id')
    rankings.add_argument('--top', type=int, default=10, help='Entries to print')

    return parser

async def run(args: argparse.Namespace) -> int:
    """Execute one CLI command"""
    Config.validate()

    db = Database()
    await db.initialize()
    pipeline: Optional[LeaguePipeline] = None
    try:
        if args.command == 'init-db':
            print("Database ready")
            return 0

        if args.command == 'seed-config':
            count = await seed_configurations(db)
            print(f"Seeded {count} configuration parameters")
            return 0

        config_service = ConfigurationService(db.session_factory)
        await config_service.load_all()
        pipeline = LeaguePipeline(db, config_service=config_service)

        if args.command == 'rebuild-standings':
            snapshots = await pipeline.standings.rebuild_division(args.competition, args.season, args.division)
            print(f"Rebuilt {len(snapshots)} snapshots")
            if snapshots:
                for standing in snapshots[-1].standings:
                    print(f"  {standing.rank:>3}. fighter {standing.fighter_id:<6} "
                          f"{standing.wins}-{standing.losses}  {standing.points} pts")

        elif args.command == 'replay-streaks':
            version = await pipeline.on_season_data_changed()
            print(f"Streak generation {version} is current")

        elif args.command == 'check-completion':
            status = await pipeline.completion.check_completion(args.league_season)
            print(f"Season {status.season_number}: {status.reason}")

        elif args.command == 'recalculate-rankings':
            snapshot = await pipeline.ranking.recalculate(args.league_meta)
            print(f"Global ranking generation {snapshot.version} ({snapshot.total_fighters} fighters)")
            for entry in snapshot.top(args.top):
                print(f"  {entry.rank:>3}. fighter {entry.fighter_id:<6} {entry.score:.2f}")

        return 0
    except EngineException as e:
        logger.error(str(e))
        print(e.user_message, file=sys.stderr)
        return 1
    finally:
        if pipeline is not None:
            await pipeline.stop()
        await db.close()

def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))

if __name__ == "__main__":
    sys.exit(main())
