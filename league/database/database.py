import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.pool import StaticPool

from league.config import Config
from league.data_models.completion import DivisionInfo
from league.data_models.fight import FightContext, FightRecord
from league.data_models.ranking import (
    CompetitionRecord, CupAppearance, DivisionAppearance, FighterCareer, GlobalRankEntry,
    GlobalRankSnapshot, LeagueAppearance, Participation, ScoreBreakdown, SeasonDetail,
    TitleCount, TitleDetail
)
from league.data_models.standings import FighterStanding, StandingsSnapshot
from league.data_models.streaks import (
    FightDetail, FighterStreakState, OpponentHistoryEntry, StreakRecord, StreakType
)
from league.database.models import (
    Base, CompetitionMeta, Competition, CompetitionType, Division, SeasonParticipant,
    Fighter, Fight, FightStatus, RoundStanding, RoundStandingEntry,
    StreakGeneration, FighterStreak, OpponentHistory, OpponentFightDetail,
    CompetitionHistory, SeasonDetailRow, GlobalRank, GlobalRankEntryRow
)
from league.utils.completion import CompletionDetector
from league.utils.exceptions import (
    DatabaseError, DataIntegrityError, InvalidStateError, NotFoundError, SnapshotConflictError
)
from league.utils.fight_identifier import parse_fight_identifier
from league.utils.logger import setup_logger

class Database:
    """Engine/session lifecycle plus the fight source and snapshot store"""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self) -> async_sessionmaker:
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url or Config.get_async_database_url()

        engine_options = {'echo': Config.DEBUG, 'future': True}
        if database_url.endswith('://') or ':memory:' in database_url:
            # In-memory SQLite only lives as long as its single connection
            engine_options['poolclass'] = StaticPool
            engine_options['connect_args'] = {'check_same_thread': False}

        self.engine = create_async_engine(database_url, **engine_options)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for one unit of work.

        Everything done with the yielded session commits together on success
        or rolls back together on failure. Engine exceptions propagate as-is;
        other SQLAlchemy failures are wrapped in DatabaseError.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError("transaction", str(e)) from e
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Competition structure

    async def create_competition_meta(self, code: str, name: str,
                                      competition_type: CompetitionType) -> CompetitionMeta:
        async with self.transaction() as session:
            meta = CompetitionMeta(code=code.upper(), name=name, competition_type=competition_type)
            session.add(meta)
            await session.flush()
            return meta

    async def get_competition_meta_by_code(self, code: str) -> Optional[CompetitionMeta]:
        async with self.get_session() as session:
            result = await session.execute(
                select(CompetitionMeta).where(CompetitionMeta.code == code.upper())
            )
            return result.scalar_one_or_none()

    async def create_competition(self, competition_meta_id: int, season_number: int,
                                 linked_league_season_id: Optional[int] = None) -> Competition:
        """Create one season of a competition"""
        async with self.transaction() as session:
            competition = Competition(
                competition_meta_id=competition_meta_id,
                season_number=season_number,
                linked_league_season_id=linked_league_season_id
            )
            session.add(competition)
            await session.flush()
            return competition

    async def get_competition(self, competition_season_id: int) -> Competition:
        """Get a competition season with its meta and divisions loaded"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Competition)
                .options(selectinload(Competition.meta), selectinload(Competition.divisions))
                .where(Competition.id == competition_season_id)
            )
            competition = result.scalar_one_or_none()
            if competition is None:
                raise NotFoundError("Competition", competition_season_id)
            return competition

    async def find_linked_cup_season(self, league_season_id: int, cup_code: str) -> Optional[Competition]:
        """
        Find the cup season that points back at a league season.

        Returns None when the cup season has not been created yet.
        """
        async with self.get_session() as session:
            result = await session.execute(
                select(Competition)
                .join(CompetitionMeta, Competition.competition_meta_id == CompetitionMeta.id)
                .options(selectinload(Competition.meta))
                .where(
                    Competition.linked_league_season_id == league_season_id,
                    CompetitionMeta.code == cup_code.upper()
                )
            )
            return result.scalars().first()

    async def create_division(self, competition_id: int, division_number: int,
                              total_rounds: int) -> Division:
        async with self.transaction() as session:
            division = Division(
                competition_id=competition_id,
                division_number=division_number,
                total_rounds=total_rounds
            )
            session.add(division)
            await session.flush()
            return division

    async def list_divisions(self, competition_season_id: int) -> List[DivisionInfo]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Division)
                .where(Division.competition_id == competition_season_id)
                .order_by(Division.division_number)
            )
            return [
                DivisionInfo(division=division.division_number, total_rounds=division.total_rounds)
                for division in result.scalars().all()
            ]

    async def add_participant(self, competition_id: int, fighter_id: int,
                              division_number: Optional[int] = None) -> SeasonParticipant:
        """Enter a fighter in a season, in a division for leagues"""
        async with self.transaction() as session:
            participant = SeasonParticipant(
                competition_id=competition_id,
                fighter_id=fighter_id,
                division_number=division_number
            )
            session.add(participant)
            await session.flush()
            return participant

    async def list_participations(self) -> List[Participation]:
        async with self.get_session() as session:
            result = await session.execute(
                select(SeasonParticipant, Competition.competition_meta_id, Competition.season_number)
                .join(Competition, SeasonParticipant.competition_id == Competition.id)
            )
            return [
                Participation(
                    competition_id=meta_id,
                    season=season_number,
                    fighter_id=participant.fighter_id,
                    division=participant.division_number,
                    competition_season_id=participant.competition_id,
                )
                for participant, meta_id, season_number in result.all()
            ]

    # Fighters

    async def create_fighter(self, name: str) -> Fighter:
        async with self.transaction() as session:
            fighter = Fighter(name=name)
            session.add(fighter)
            await session.flush()
            return fighter

    async def get_fighter(self, fighter_id: int) -> Fighter:
        async with self.get_session() as session:
            fighter = await session.get(Fighter, fighter_id)
            if fighter is None:
                raise NotFoundError("Fighter", fighter_id)
            return fighter

    async def list_fighters(self, active_only: bool = False) -> List[Fighter]:
        async with self.get_session() as session:
            query = select(Fighter).order_by(Fighter.id)
            if active_only:
                query = query.where(Fighter.is_active == True)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_fighter_rank_pointer(self, fighter_id: int, rank: int, score: float,
                                          snapshot_id: int):
        """Point a fighter's cached global rank at a ranking generation"""
        async with self.transaction() as session:
            await self._write_rank_pointer(session, fighter_id, rank, score, snapshot_id)

    async def _write_rank_pointer(self, session: AsyncSession, fighter_id: int, rank: int,
                                  score: float, snapshot_id: int):
        result = await session.execute(
            update(Fighter)
            .where(Fighter.id == fighter_id)
            .values(global_rank_position=rank, global_rank_score=score, global_rank_id=snapshot_id)
        )
        if result.rowcount == 0:
            raise NotFoundError("Fighter", fighter_id)

    # Fight source

    @staticmethod
    def _fight_query():
        return (
            select(Fight, Competition.competition_meta_id, CompetitionMeta.code)
            .join(Competition, Fight.competition_id == Competition.id)
            .join(CompetitionMeta, Competition.competition_meta_id == CompetitionMeta.id)
        )

    @staticmethod
    def _to_fight_record(fight: Fight, meta_id: int, code: str) -> FightRecord:
        return FightRecord(
            fight_identifier=fight.fight_identifier,
            fighter1_id=fight.fighter1_id,
            fighter2_id=fight.fighter2_id,
            winner_id=fight.winner_id,
            competition_id=meta_id,
            season=fight.season_number,
            division=fight.division_number,
            round=fight.round_number,
            fight_number=fight.fight_number,
            stage=fight.stage,
            competition_code=code,
            fight_id=fight.id,
            competition_season_id=fight.competition_id,
        )

    def _to_fight_records(self, rows) -> List[FightRecord]:
        records = [self._to_fight_record(fight, meta_id, code) for fight, meta_id, code in rows]
        return sorted(records, key=lambda record: record.chronological_key)

    async def create_fight(self, competition_id: int, fight_identifier: str, fighter1_id: int,
                           fighter2_id: int, winner_id: Optional[int] = None) -> FightRecord:
        """
        Schedule a fight in a competition season.

        Season, division, round and stage columns are taken from the identifier.
        """
        parsed = parse_fight_identifier(fight_identifier)

        async with self.transaction() as session:
            competition = await session.get(Competition, competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            if parsed.season != competition.season_number:
                raise DataIntegrityError(
                    f"fight '{fight_identifier}' is for season {parsed.season} but competition "
                    f"{competition_id} is season {competition.season_number}"
                )
            if winner_id is not None and winner_id not in (fighter1_id, fighter2_id):
                raise InvalidStateError(fight_identifier, "winner is not one of the two fighters")

            fight = Fight(
                competition_id=competition_id,
                fight_identifier=fight_identifier.upper(),
                fighter1_id=fighter1_id,
                fighter2_id=fighter2_id,
                winner_id=winner_id,
                season_number=parsed.season,
                division_number=parsed.division,
                round_number=parsed.round,
                stage=parsed.stage,
                fight_number=parsed.fight_number,
                status=FightStatus.COMPLETED if winner_id is not None else FightStatus.SCHEDULED,
                decided_at=datetime.utcnow() if winner_id is not None else None
            )
            session.add(fight)
            await session.flush()

            row = (await session.execute(self._fight_query().where(Fight.id == fight.id))).one()
            return self._to_fight_record(*row)

    async def get_fight(self, fight_id: int) -> FightRecord:
        async with self.get_session() as session:
            row = (await session.execute(self._fight_query().where(Fight.id == fight_id))).first()
            if row is None:
                raise NotFoundError("Fight", fight_id)
            return self._to_fight_record(*row)

    async def list_fights(self, competition_id: int, season: Optional[int] = None,
                          division: Optional[int] = None) -> List[FightRecord]:
        """
        List fights of a competition in chronological order.

        Args:
            competition_id: Competition meta id
            season: Restrict to one season
            division: Restrict to one league division
        """
        query = self._fight_query().where(Competition.competition_meta_id == competition_id)
        if season is not None:
            query = query.where(Fight.season_number == season)
        if division is not None:
            query = query.where(Fight.division_number == division)

        async with self.get_session() as session:
            result = await session.execute(query)
            return self._to_fight_records(result.all())

    async def list_season_fights(self, competition_season_id: int) -> List[FightRecord]:
        async with self.get_session() as session:
            result = await session.execute(
                self._fight_query().where(Fight.competition_id == competition_season_id)
            )
            return self._to_fight_records(result.all())

    async def list_all_decided_fights(self) -> List[FightRecord]:
        """Every decided fight of every competition in chronological order"""
        async with self.get_session() as session:
            result = await session.execute(
                self._fight_query().where(Fight.winner_id.isnot(None))
            )
            return self._to_fight_records(result.all())

    async def get_fighter_roster(self, competition_id: int, season: int, division: int) -> List[int]:
        """Fighter ids of a division roster, including fighters without fights"""
        async with self.get_session() as session:
            result = await session.execute(
                select(SeasonParticipant.fighter_id)
                .join(Competition, SeasonParticipant.competition_id == Competition.id)
                .where(
                    Competition.competition_meta_id == competition_id,
                    Competition.season_number == season,
                    SeasonParticipant.division_number == division
                )
                .order_by(SeasonParticipant.fighter_id)
            )
            return list(result.scalars().all())

    async def record_fight_result(self, fight_id: int, winner_id: int) -> FightRecord:
        """
        Set the winner of a fight.

        Recording the same winner twice is a no-op; a different winner for a
        decided fight is rejected.
        """
        async with self.transaction() as session:
            row = (await session.execute(self._fight_query().where(Fight.id == fight_id))).first()
            if row is None:
                raise NotFoundError("Fight", fight_id)
            fight, meta_id, code = row

            if winner_id not in (fight.fighter1_id, fight.fighter2_id):
                raise InvalidStateError(fight.fight_identifier, "winner is not one of the two fighters")
            if fight.winner_id is not None:
                if fight.winner_id == winner_id:
                    return self._to_fight_record(fight, meta_id, code)
                raise InvalidStateError(
                    fight.fight_identifier, f"already decided in favour of fighter {fight.winner_id}"
                )

            fight.winner_id = winner_id
            fight.status = FightStatus.COMPLETED
            fight.decided_at = datetime.utcnow()
            return self._to_fight_record(fight, meta_id, code)

    # Standings snapshots

    async def _find_season_row(self, session: AsyncSession, competition_meta_id: int,
                               season_number: int) -> Optional[Competition]:
        result = await session.execute(
            select(Competition).where(
                Competition.competition_meta_id == competition_meta_id,
                Competition.season_number == season_number
            )
        )
        return result.scalar_one_or_none()

    async def _get_season_row(self, session: AsyncSession, competition_meta_id: int,
                              season_number: int) -> Competition:
        competition = await self._find_season_row(session, competition_meta_id, season_number)
        if competition is None:
            raise NotFoundError("Competition season", f"{competition_meta_id}/S{season_number}")
        return competition

    @staticmethod
    def _to_standing_row(competition_season_id: int, snapshot: StandingsSnapshot,
                         sequence: int) -> RoundStanding:
        return RoundStanding(
            competition_id=competition_season_id,
            division_number=snapshot.division,
            round_number=snapshot.round,
            fight_id=snapshot.fight_id,
            fight_identifier=snapshot.fight_identifier,
            sequence=sequence,
            entries=[
                RoundStandingEntry(
                    fighter_id=standing.fighter_id,
                    fights_count=standing.fights_count,
                    wins=standing.wins,
                    points=standing.points,
                    rank=standing.rank,
                    total_fighters_count=standing.total_fighters_count
                )
                for standing in snapshot.standings
            ]
        )

    @staticmethod
    def _to_snapshot(row: RoundStanding, competition_meta_id: int, season_number: int) -> StandingsSnapshot:
        return StandingsSnapshot(
            competition_id=competition_meta_id,
            season=season_number,
            division=row.division_number,
            round=row.round_number,
            fight_identifier=row.fight_identifier,
            fight_id=row.fight_id,
            standings=tuple(
                FighterStanding(
                    fighter_id=entry.fighter_id,
                    fights_count=entry.fights_count,
                    wins=entry.wins,
                    points=entry.points,
                    rank=entry.rank,
                    total_fighters_count=entry.total_fighters_count
                )
                for entry in sorted(row.entries, key=lambda entry: entry.rank)
            )
        )

    @staticmethod
    def _standings_query(competition_meta_id: int, season: int, division: int):
        return (
            select(RoundStanding)
            .join(Competition, RoundStanding.competition_id == Competition.id)
            .options(selectinload(RoundStanding.entries))
            .where(
                Competition.competition_meta_id == competition_meta_id,
                Competition.season_number == season,
                RoundStanding.division_number == division
            )
        )

    async def save_standings_snapshot(self, snapshot: StandingsSnapshot) -> int:
        """Append a snapshot after the latest one of its division"""
        async with self.transaction() as session:
            competition = await self._get_season_row(session, snapshot.competition_id, snapshot.season)
            last_sequence = await session.scalar(
                select(func.max(RoundStanding.sequence)).where(
                    RoundStanding.competition_id == competition.id,
                    RoundStanding.division_number == snapshot.division
                )
            )
            row = self._to_standing_row(competition.id, snapshot, (last_sequence or 0) + 1)
            session.add(row)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DataIntegrityError(
                    f"standings for fight '{snapshot.fight_identifier}' already saved"
                ) from e
            return row.id

    async def replace_standings_snapshots(self, competition_id: int, season: int, division: int,
                                          snapshots: Iterable[StandingsSnapshot]) -> int:
        """Atomically swap every snapshot of a division for a rebuilt sequence"""
        async with self.transaction() as session:
            competition = await self._get_season_row(session, competition_id, season)
            stale_ids = select(RoundStanding.id).where(
                RoundStanding.competition_id == competition.id,
                RoundStanding.division_number == division
            )
            await session.execute(
                delete(RoundStandingEntry).where(RoundStandingEntry.round_standing_id.in_(stale_ids))
            )
            await session.execute(
                delete(RoundStanding).where(
                    RoundStanding.competition_id == competition.id,
                    RoundStanding.division_number == division
                )
            )

            count = 0
            for sequence, snapshot in enumerate(snapshots, start=1):
                session.add(self._to_standing_row(competition.id, snapshot, sequence))
                count += 1
            await session.flush()
            return count

    async def get_latest_standings_snapshot(self, competition_id: int, season: int,
                                            division: int) -> Optional[StandingsSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                self._standings_query(competition_id, season, division)
                .order_by(RoundStanding.sequence.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return self._to_snapshot(row, competition_id, season) if row else None

    async def get_standings_snapshot_for_fight(self, fight_id: int) -> Optional[StandingsSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                select(RoundStanding, Competition.competition_meta_id, Competition.season_number)
                .join(Competition, RoundStanding.competition_id == Competition.id)
                .options(selectinload(RoundStanding.entries))
                .where(RoundStanding.fight_id == fight_id)
            )
            row = result.first()
            if row is None:
                return None
            standing, meta_id, season_number = row
            return self._to_snapshot(standing, meta_id, season_number)

    async def list_standings_snapshots(self, competition_id: int, season: int,
                                       division: int) -> List[StandingsSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                self._standings_query(competition_id, season, division)
                .order_by(RoundStanding.sequence)
            )
            return [self._to_snapshot(row, competition_id, season) for row in result.scalars().all()]

    async def get_final_standings(self, competition_id: int, season: int,
                                  division: int) -> Optional[StandingsSnapshot]:
        """
        Snapshot of the last fight of the division's last round.

        Returns None until every fight of the last round is decided.
        """
        async with self.get_session() as session:
            competition = await self._get_season_row(session, competition_id, season)
            division_row = (await session.execute(
                select(Division).where(
                    Division.competition_id == competition.id,
                    Division.division_number == division
                )
            )).scalar_one_or_none()
            if division_row is None:
                raise NotFoundError("Division", f"{competition_id}/S{season}/D{division}")

            fights = (await session.execute(
                self._fight_query().where(
                    Fight.competition_id == competition.id,
                    Fight.division_number == division
                )
            )).all()
            info = DivisionInfo(division=division, total_rounds=division_row.total_rounds)
            if not CompletionDetector.is_league_completed([info], self._to_fight_records(fights)):
                return None

            result = await session.execute(
                self._standings_query(competition_id, season, division)
                .where(RoundStanding.round_number == division_row.total_rounds)
                .order_by(RoundStanding.sequence.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return self._to_snapshot(row, competition_id, season) if row else None

    async def list_final_standings(self) -> List[StandingsSnapshot]:
        """Final standings of every finished league division"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Competition.competition_meta_id, Competition.season_number,
                       Division.division_number)
                .join(Division, Division.competition_id == Competition.id)
                .order_by(Competition.competition_meta_id, Competition.season_number,
                          Division.division_number)
            )
            divisions = result.all()

        finals = []
        for meta_id, season_number, division_number in divisions:
            snapshot = await self.get_final_standings(meta_id, season_number, division_number)
            if snapshot is not None:
                finals.append(snapshot)
        return finals

    # Streak generations

    async def get_current_streak_version(self) -> Optional[int]:
        async with self.get_session() as session:
            return await session.scalar(
                select(StreakGeneration.version).where(StreakGeneration.is_current == True)
            )

    async def save_streak_state(self, states: Mapping[int, FighterStreakState],
                                careers: Mapping[int, FighterCareer],
                                expected_version: Optional[int], scope: str = 'global',
                                fights_processed: int = 0) -> int:
        """
        Write a complete streak generation and promote it to current.

        The promotion is a compare-and-swap: if the current generation is no
        longer expected_version nothing is written.

        Returns:
            Version of the new current generation

        Raises:
            SnapshotConflictError: If another generation was promoted first
        """
        async with self.transaction() as session:
            current = (await session.execute(
                select(StreakGeneration).where(StreakGeneration.is_current == True)
            )).scalar_one_or_none()
            actual_version = current.version if current else None
            if actual_version != expected_version:
                raise SnapshotConflictError("streak generation", expected_version, actual_version)

            if current is not None:
                result = await session.execute(
                    update(StreakGeneration)
                    .where(StreakGeneration.id == current.id, StreakGeneration.is_current == True)
                    .values(is_current=False)
                )
                if result.rowcount != 1:
                    raise SnapshotConflictError("streak generation", expected_version, None)

            last_version = await session.scalar(select(func.max(StreakGeneration.version)))
            generation = StreakGeneration(
                version=(last_version or 0) + 1,
                is_current=True,
                scope=scope,
                fights_processed=fights_processed
            )
            session.add(generation)
            try:
                await session.flush()
            except IntegrityError as e:
                raise SnapshotConflictError("streak generation", expected_version, None) from e

            for fighter_id, state in states.items():
                self._add_streak_rows(session, generation.id, fighter_id, state)
            for fighter_id, career in careers.items():
                self._add_career_rows(session, generation.id, fighter_id, career)
            await session.flush()

            await self._prune_streak_generations(session, generation.version)
            return generation.version

    @staticmethod
    def _add_streak_rows(session: AsyncSession, generation_id: int, fighter_id: int,
                         state: FighterStreakState):
        for position, streak in enumerate(state.streaks):
            end = streak.end
            session.add(FighterStreak(
                generation_id=generation_id,
                fighter_id=fighter_id,
                position=position,
                streak_type=streak.type,
                competition_meta_id=streak.competition_id,
                count=streak.count,
                active=streak.active,
                start_season=streak.start.season,
                start_division=streak.start.division,
                start_round=streak.start.round,
                start_fight_id=streak.start.fight_id,
                start_fight_identifier=streak.start.fight_identifier,
                end_competition_meta_id=end.competition_id if end else None,
                end_season=end.season if end else None,
                end_division=end.division if end else None,
                end_round=end.round if end else None,
                end_fight_id=end.fight_id if end else None,
                end_fight_identifier=end.fight_identifier if end else None,
                opponents=json.dumps(list(streak.opponents))
            ))

        for position, entry in enumerate(state.opponent_history):
            session.add(OpponentHistory(
                generation_id=generation_id,
                fighter_id=fighter_id,
                opponent_id=entry.opponent_id,
                position=position,
                total_fights=entry.total_fights,
                total_wins=entry.total_wins,
                total_losses=entry.total_losses,
                win_percentage=entry.win_percentage,
                details=[
                    OpponentFightDetail(
                        position=index,
                        competition_meta_id=detail.competition_id,
                        season_number=detail.season,
                        division_number=detail.division,
                        round_number=detail.round,
                        fight_id=detail.fight_id,
                        fight_identifier=detail.fight_identifier,
                        is_winner=detail.is_winner
                    )
                    for index, detail in enumerate(entry.details)
                ]
            ))

    @staticmethod
    def _add_career_rows(session: AsyncSession, generation_id: int, fighter_id: int,
                         career: FighterCareer):
        for record in career.competition_records:
            title_seasons = {title.season for title in record.titles}
            session.add(CompetitionHistory(
                generation_id=generation_id,
                fighter_id=fighter_id,
                competition_meta_id=record.competition_id,
                total_fights=record.total_fights,
                total_wins=record.total_wins,
                total_losses=record.total_losses,
                win_percentage=record.win_percentage,
                seasons=[
                    SeasonDetailRow(
                        season_number=detail.season,
                        division_number=detail.division,
                        competition_season_id=detail.competition_season_id,
                        fights=detail.fights,
                        wins=detail.wins,
                        losses=detail.losses,
                        points=detail.points,
                        win_percentage=detail.win_percentage,
                        final_position=detail.final_position,
                        cup_result=detail.cup_result,
                        is_title=detail.season in title_seasons
                    )
                    for detail in record.season_details
                ]
            ))

    async def _prune_streak_generations(self, session: AsyncSession, current_version: int,
                                        keep_previous: int = 1):
        """Delete superseded generations, keeping the most recent few for inspection"""
        stale = (await session.execute(
            select(StreakGeneration.id)
            .where(StreakGeneration.version < current_version - keep_previous)
        )).scalars().all()
        if not stale:
            return

        history_ids = select(OpponentHistory.id).where(OpponentHistory.generation_id.in_(stale))
        await session.execute(
            delete(OpponentFightDetail).where(OpponentFightDetail.opponent_history_id.in_(history_ids))
        )
        await session.execute(delete(OpponentHistory).where(OpponentHistory.generation_id.in_(stale)))
        await session.execute(delete(FighterStreak).where(FighterStreak.generation_id.in_(stale)))

        career_ids = select(CompetitionHistory.id).where(CompetitionHistory.generation_id.in_(stale))
        await session.execute(
            delete(SeasonDetailRow).where(SeasonDetailRow.competition_history_id.in_(career_ids))
        )
        await session.execute(
            delete(CompetitionHistory).where(CompetitionHistory.generation_id.in_(stale))
        )
        await session.execute(delete(StreakGeneration).where(StreakGeneration.id.in_(stale)))
        self.logger.debug(f"Pruned {len(stale)} superseded streak generations")

    async def get_current_streak_state(self, fighter_id: Optional[int] = None) -> Dict[int, FighterStreakState]:
        """Streaks and opponent histories of the current generation"""
        async with self.get_session() as session:
            generation_id = await session.scalar(
                select(StreakGeneration.id).where(StreakGeneration.is_current == True)
            )
            if generation_id is None:
                return {}

            streak_query = select(FighterStreak).where(FighterStreak.generation_id == generation_id)
            history_query = (
                select(OpponentHistory)
                .options(selectinload(OpponentHistory.details))
                .where(OpponentHistory.generation_id == generation_id)
            )
            if fighter_id is not None:
                streak_query = streak_query.where(FighterStreak.fighter_id == fighter_id)
                history_query = history_query.where(OpponentHistory.fighter_id == fighter_id)

            streak_rows = (await session.execute(
                streak_query.order_by(FighterStreak.fighter_id, FighterStreak.position)
            )).scalars().all()
            history_rows = (await session.execute(
                history_query.order_by(OpponentHistory.fighter_id, OpponentHistory.position)
            )).scalars().all()

        streaks: Dict[int, list] = {}
        for row in streak_rows:
            start = FightContext(
                competition_id=row.competition_meta_id,
                season=row.start_season,
                division=row.start_division,
                round=row.start_round,
                fight_id=row.start_fight_id,
                fight_identifier=row.start_fight_identifier
            )
            end = None
            if row.end_season is not None:
                end = FightContext(
                    competition_id=row.end_competition_meta_id,
                    season=row.end_season,
                    division=row.end_division,
                    round=row.end_round,
                    fight_id=row.end_fight_id,
                    fight_identifier=row.end_fight_identifier or ''
                )
            streaks.setdefault(row.fighter_id, []).append(StreakRecord(
                type=row.streak_type,
                competition_id=row.competition_meta_id,
                start=start,
                count=row.count,
                active=row.active,
                end=end,
                opponents=tuple(json.loads(row.opponents))
            ))

        histories: Dict[int, list] = {}
        for row in history_rows:
            histories.setdefault(row.fighter_id, []).append(OpponentHistoryEntry(
                opponent_id=row.opponent_id,
                total_fights=row.total_fights,
                total_wins=row.total_wins,
                total_losses=row.total_losses,
                win_percentage=row.win_percentage,
                details=tuple(
                    FightDetail(
                        competition_id=detail.competition_meta_id,
                        season=detail.season_number,
                        division=detail.division_number,
                        round=detail.round_number,
                        fight_id=detail.fight_id,
                        fight_identifier=detail.fight_identifier,
                        is_winner=detail.is_winner
                    )
                    for detail in row.details
                )
            ))

        return {
            fighter: FighterStreakState(
                fighter_id=fighter,
                streaks=tuple(streaks.get(fighter, ())),
                opponent_history=tuple(histories.get(fighter, ()))
            )
            for fighter in set(streaks) | set(histories)
        }

    async def get_current_careers(self) -> Dict[int, FighterCareer]:
        """Competition histories of the current generation, keyed by fighter id"""
        async with self.get_session() as session:
            generation_id = await session.scalar(
                select(StreakGeneration.id).where(StreakGeneration.is_current == True)
            )
            if generation_id is None:
                return {}

            history_rows = (await session.execute(
                select(CompetitionHistory)
                .options(selectinload(CompetitionHistory.seasons))
                .where(CompetitionHistory.generation_id == generation_id)
                .order_by(CompetitionHistory.fighter_id, CompetitionHistory.competition_meta_id)
            )).scalars().all()

            longest_rows = (await session.execute(
                select(FighterStreak.fighter_id, func.max(FighterStreak.count))
                .where(
                    FighterStreak.generation_id == generation_id,
                    FighterStreak.streak_type == StreakType.WIN
                )
                .group_by(FighterStreak.fighter_id)
            )).all()

        longest = {fighter_id: count for fighter_id, count in longest_rows}
        records: Dict[int, list] = {}
        for row in history_rows:
            details = tuple(
                SeasonDetail(
                    season=season.season_number,
                    division=season.division_number,
                    fights=season.fights,
                    wins=season.wins,
                    losses=season.losses,
                    points=season.points,
                    win_percentage=season.win_percentage,
                    final_position=season.final_position,
                    cup_result=season.cup_result,
                    competition_season_id=season.competition_season_id
                )
                for season in row.seasons
            )
            titles = tuple(
                TitleDetail(
                    season=season.season_number,
                    division=season.division_number,
                    competition_season_id=season.competition_season_id
                )
                for season in row.seasons if season.is_title
            )
            records.setdefault(row.fighter_id, []).append(CompetitionRecord(
                competition_id=row.competition_meta_id,
                total_fights=row.total_fights,
                total_wins=row.total_wins,
                total_losses=row.total_losses,
                win_percentage=row.win_percentage,
                season_details=details,
                titles=titles
            ))

        return {
            fighter_id: FighterCareer(
                fighter_id=fighter_id,
                competition_records=tuple(records.get(fighter_id, ())),
                longest_win_streak=longest.get(fighter_id, 0)
            )
            for fighter_id in set(records) | set(longest)
        }

    # Global ranking generations

    async def get_current_global_rank_version(self) -> Optional[int]:
        async with self.get_session() as session:
            return await session.scalar(
                select(GlobalRank.version).where(GlobalRank.is_current == True)
            )

    async def count_current_global_ranks(self) -> int:
        async with self.get_session() as session:
            return await session.scalar(
                select(func.count(GlobalRank.id)).where(GlobalRank.is_current == True)
            )

    async def get_current_global_rank(self) -> Optional[GlobalRankSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                select(GlobalRank)
                .options(selectinload(GlobalRank.entries))
                .where(GlobalRank.is_current == True)
            )
            row = result.scalar_one_or_none()
            return self._to_global_rank_snapshot(row) if row else None

    async def save_global_rank_snapshot(self, snapshot: GlobalRankSnapshot,
                                        expected_version: Optional[int]) -> GlobalRankSnapshot:
        """
        Persist a ranking generation, promote it and repoint every ranked fighter.

        Demoting the old generation, inserting the new one and rewriting the
        fighters' rank pointers happen in one transaction.

        Raises:
            SnapshotConflictError: If the current generation is no longer expected_version
        """
        async with self.transaction() as session:
            actual_version = await session.scalar(
                select(GlobalRank.version).where(GlobalRank.is_current == True)
            )
            if actual_version != expected_version:
                raise SnapshotConflictError("global ranking", expected_version, actual_version)

            if actual_version is not None:
                result = await session.execute(
                    update(GlobalRank)
                    .where(GlobalRank.version == actual_version, GlobalRank.is_current == True)
                    .values(is_current=False)
                )
                if result.rowcount != 1:
                    raise SnapshotConflictError("global ranking", expected_version, None)

            last_version = await session.scalar(select(func.max(GlobalRank.version)))
            row = GlobalRank(
                version=(last_version or 0) + 1,
                league_competition_meta_id=snapshot.league_competition_id,
                is_current=True,
                total_fighters=snapshot.total_fighters,
                entries=[self._to_global_rank_entry_row(entry) for entry in snapshot.entries]
            )
            session.add(row)
            try:
                await session.flush()
            except IntegrityError as e:
                raise SnapshotConflictError("global ranking", expected_version, None) from e

            for entry in snapshot.entries:
                await self._write_rank_pointer(session, entry.fighter_id, entry.rank, entry.score, row.id)

            await session.refresh(row, attribute_names=['created_at'])
            return GlobalRankSnapshot(
                league_competition_id=snapshot.league_competition_id,
                entries=snapshot.entries,
                version=row.version,
                snapshot_id=row.id,
                is_current=True,
                created_at=row.created_at
            )

    @staticmethod
    def _to_global_rank_entry_row(entry: GlobalRankEntry) -> GlobalRankEntryRow:
        breakdown = entry.breakdown
        return GlobalRankEntryRow(
            fighter_id=entry.fighter_id,
            rank=entry.rank,
            score=entry.score,
            win_percentage=breakdown.win_percentage,
            league_titles=breakdown.league_titles,
            champions_cup_titles=breakdown.champions_cup_titles,
            invicta_cup_titles=breakdown.invicta_cup_titles,
            champions_cup_appearances=breakdown.champions_cup_appearances,
            invicta_cup_appearances=breakdown.invicta_cup_appearances,
            division_1_appearances=breakdown.division_1_appearances,
            division_2_appearances=breakdown.division_2_appearances,
            division_3_appearances=breakdown.division_3_appearances,
            longest_win_streak=breakdown.longest_win_streak,
            titles=json.dumps([
                {'competitionId': title.competition_id, 'numberOfTitles': title.number_of_titles}
                for title in entry.titles
            ]),
            cup_appearances=json.dumps([
                {'competitionId': cup.competition_id, 'appearances': cup.appearances}
                for cup in entry.cup_appearances
            ]),
            league_appearances=json.dumps([
                {
                    'competitionId': league.competition_id,
                    'divisionAppearances': [
                        {'division': division.division, 'appearances': division.appearances}
                        for division in league.division_appearances
                    ]
                }
                for league in entry.league_appearances
            ])
        )

    @staticmethod
    def _to_global_rank_snapshot(row: GlobalRank) -> GlobalRankSnapshot:
        entries = []
        for entry in sorted(row.entries, key=lambda entry: entry.rank):
            entries.append(GlobalRankEntry(
                fighter_id=entry.fighter_id,
                score=entry.score,
                rank=entry.rank,
                breakdown=ScoreBreakdown(
                    win_percentage=entry.win_percentage,
                    league_titles=entry.league_titles,
                    champions_cup_titles=entry.champions_cup_titles,
                    invicta_cup_titles=entry.invicta_cup_titles,
                    champions_cup_appearances=entry.champions_cup_appearances,
                    invicta_cup_appearances=entry.invicta_cup_appearances,
                    division_1_appearances=entry.division_1_appearances,
                    division_2_appearances=entry.division_2_appearances,
                    division_3_appearances=entry.division_3_appearances,
                    longest_win_streak=entry.longest_win_streak
                ),
                titles=tuple(
                    TitleCount(competition_id=item['competitionId'], number_of_titles=item['numberOfTitles'])
                    for item in json.loads(entry.titles)
                ),
                cup_appearances=tuple(
                    CupAppearance(competition_id=item['competitionId'], appearances=item['appearances'])
                    for item in json.loads(entry.cup_appearances)
                ),
                league_appearances=tuple(
                    LeagueAppearance(
                        competition_id=item['competitionId'],
                        division_appearances=tuple(
                            DivisionAppearance(division=division['division'],
                                               appearances=division['appearances'])
                            for division in item['divisionAppearances']
                        )
                    )
                    for item in json.loads(entry.league_appearances)
                )
            ))

        return GlobalRankSnapshot(
            league_competition_id=row.league_competition_meta_id,
            entries=tuple(entries),
            version=row.version,
            snapshot_id=row.id,
            is_current=row.is_current,
            created_at=row.created_at
        )
