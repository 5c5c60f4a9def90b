from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text
from enum import Enum

from league.data_models.streaks import StreakType

Base = declarative_base()

class CompetitionType(Enum):
    LEAGUE = "league"
    CUP = "cup"

class FightStatus(Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"

class CompetitionMeta(Base):
    """A competition across all of its seasons (IFC, CC, IC)"""
    __tablename__ = 'competition_metas'

    id = Column(Integer, primary_key=True)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    competition_type = Column(SQLEnum(CompetitionType), nullable=False)

    created_at = Column(DateTime, default=func.now())

    seasons = relationship("Competition", back_populates="meta")

    def __repr__(self):
        return f"<CompetitionMeta(code='{self.code}', type={self.competition_type})>"

class Competition(Base):
    """One season of a competition"""
    __tablename__ = 'competitions'

    id = Column(Integer, primary_key=True)
    competition_meta_id = Column(Integer, ForeignKey('competition_metas.id'), nullable=False, index=True)
    season_number = Column(Integer, nullable=False)

    # Cup seasons point back at the league season they belong to
    linked_league_season_id = Column(Integer, ForeignKey('competitions.id'), nullable=True, index=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    meta = relationship("CompetitionMeta", back_populates="seasons")
    divisions = relationship("Division", back_populates="competition", cascade="all, delete-orphan")
    linked_league_season = relationship("Competition", remote_side=[id])

    __table_args__ = (
        UniqueConstraint('competition_meta_id', 'season_number', name='uq_competition_season'),
    )

    def __repr__(self):
        return f"<Competition(meta_id={self.competition_meta_id}, season={self.season_number})>"

class Division(Base):
    __tablename__ = 'divisions'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=False)
    division_number = Column(Integer, nullable=False)
    total_rounds = Column(Integer, nullable=False)

    competition = relationship("Competition", back_populates="divisions")

    __table_args__ = (
        UniqueConstraint('competition_id', 'division_number', name='uq_division_per_season'),
        CheckConstraint('total_rounds > 0', name='ck_division_total_rounds_positive'),
    )

    def __repr__(self):
        return f"<Division(competition_id={self.competition_id}, number={self.division_number})>"

class SeasonParticipant(Base):
    """Division roster slot, or a cup place when division_number is NULL"""
    __tablename__ = 'season_participants'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)
    division_number = Column(Integer, nullable=True)

    competition = relationship("Competition")
    fighter = relationship("Fighter")

    __table_args__ = (
        UniqueConstraint('competition_id', 'fighter_id', name='uq_participant_per_season'),
    )

class Fighter(Base):
    __tablename__ = 'fighters'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, default=True)

    # Denormalized pointer into the current global ranking
    global_rank_position = Column(Integer, nullable=True)
    global_rank_score = Column(Float, nullable=True)
    global_rank_id = Column(Integer, ForeignKey('global_ranks.id'), nullable=True)

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Fighter(name='{self.name}', global_rank={self.global_rank_position})>"

class Fight(Base):
    __tablename__ = 'fights'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=False, index=True)
    fight_identifier = Column(String(50), nullable=False, unique=True)

    fighter1_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)
    fighter2_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)
    winner_id = Column(Integer, ForeignKey('fighters.id'), nullable=True)

    # Chronological columns parsed from the identifier
    season_number = Column(Integer, nullable=False)
    division_number = Column(Integer, nullable=True)  # NULL for cup fights
    round_number = Column(Integer, nullable=True)  # NULL for cup fights
    stage = Column(String(20), nullable=True)  # cup stage code
    fight_number = Column(Integer, nullable=False, default=0)

    status = Column(SQLEnum(FightStatus), default=FightStatus.SCHEDULED, nullable=False)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    competition = relationship("Competition")

    __table_args__ = (
        CheckConstraint('fighter1_id != fighter2_id', name='ck_fight_distinct_fighters'),
        Index('ix_fights_division_order', 'competition_id', 'division_number', 'round_number'),
    )

    def __repr__(self):
        return f"<Fight(identifier='{self.fight_identifier}', winner_id={self.winner_id})>"

class RoundStanding(Base):
    """Standings snapshot of a division as of one fight (append-only)"""
    __tablename__ = 'round_standings'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=False)
    division_number = Column(Integer, nullable=False)
    round_number = Column(Integer, nullable=False)
    fight_id = Column(Integer, ForeignKey('fights.id'), nullable=True)
    fight_identifier = Column(String(50), nullable=False)
    sequence = Column(Integer, nullable=False)  # position of the fight in the division

    created_at = Column(DateTime, default=func.now())

    entries = relationship("RoundStandingEntry", back_populates="round_standing",
                           cascade="all, delete-orphan", order_by="RoundStandingEntry.rank")

    __table_args__ = (
        UniqueConstraint('competition_id', 'division_number', 'fight_identifier',
                         name='uq_standing_per_fight'),
        UniqueConstraint('competition_id', 'division_number', 'sequence',
                         name='uq_standing_sequence'),
    )

    def __repr__(self):
        return f"<RoundStanding(fight='{self.fight_identifier}', sequence={self.sequence})>"

class RoundStandingEntry(Base):
    __tablename__ = 'round_standing_entries'

    id = Column(Integer, primary_key=True)
    round_standing_id = Column(Integer, ForeignKey('round_standings.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)

    fights_count = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=False)
    total_fighters_count = Column(Integer, nullable=False)

    round_standing = relationship("RoundStanding", back_populates="entries")

class StreakGeneration(Base):
    """
    One complete replay of streaks, opponent histories and competition
    histories. Readers only see the generation flagged current.
    """
    __tablename__ = 'streak_generations'

    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False, unique=True)
    is_current = Column(Boolean, nullable=False, default=False)
    scope = Column(String(20), nullable=False, default='global')
    fights_processed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('uq_streak_generation_current', 'is_current', unique=True,
              sqlite_where=text('is_current = 1'),
              postgresql_where=text('is_current')),
    )

class FighterStreak(Base):
    __tablename__ = 'fighter_streaks'

    id = Column(Integer, primary_key=True)
    generation_id = Column(Integer, ForeignKey('streak_generations.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # order of the streak in the fighter's career

    streak_type = Column(SQLEnum(StreakType), nullable=False)
    competition_meta_id = Column(Integer, ForeignKey('competition_metas.id'), nullable=False)
    count = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    start_season = Column(Integer, nullable=False)
    start_division = Column(Integer, nullable=True)
    start_round = Column(Integer, nullable=True)
    start_fight_id = Column(Integer, nullable=True)
    start_fight_identifier = Column(String(50), nullable=False)

    end_competition_meta_id = Column(Integer, nullable=True)
    end_season = Column(Integer, nullable=True)
    end_division = Column(Integer, nullable=True)
    end_round = Column(Integer, nullable=True)
    end_fight_id = Column(Integer, nullable=True)
    end_fight_identifier = Column(String(50), nullable=True)

    opponents = Column(Text, nullable=False, default='[]')  # JSON list of fighter ids

class OpponentHistory(Base):
    __tablename__ = 'opponent_histories'

    id = Column(Integer, primary_key=True)
    generation_id = Column(Integer, ForeignKey('streak_generations.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False, index=True)
    opponent_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)
    position = Column(Integer, nullable=False)

    total_fights = Column(Integer, nullable=False, default=0)
    total_wins = Column(Integer, nullable=False, default=0)
    total_losses = Column(Integer, nullable=False, default=0)
    win_percentage = Column(Integer, nullable=False, default=0)

    details = relationship("OpponentFightDetail", back_populates="history",
                           cascade="all, delete-orphan", order_by="OpponentFightDetail.position")

    __table_args__ = (
        UniqueConstraint('generation_id', 'fighter_id', 'opponent_id', name='uq_opponent_history'),
        CheckConstraint('total_fights = total_wins + total_losses', name='ck_opponent_history_totals'),
    )

class OpponentFightDetail(Base):
    __tablename__ = 'opponent_fight_details'

    id = Column(Integer, primary_key=True)
    opponent_history_id = Column(Integer, ForeignKey('opponent_histories.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    competition_meta_id = Column(Integer, nullable=False)
    season_number = Column(Integer, nullable=False)
    division_number = Column(Integer, nullable=True)
    round_number = Column(Integer, nullable=True)
    fight_id = Column(Integer, nullable=True)
    fight_identifier = Column(String(50), nullable=False)
    is_winner = Column(Boolean, nullable=False)

    history = relationship("OpponentHistory", back_populates="details")

class CompetitionHistory(Base):
    """A fighter's record in one competition, rebuilt with every streak generation"""
    __tablename__ = 'competition_histories'

    id = Column(Integer, primary_key=True)
    generation_id = Column(Integer, ForeignKey('streak_generations.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False, index=True)
    competition_meta_id = Column(Integer, ForeignKey('competition_metas.id'), nullable=False)

    total_fights = Column(Integer, nullable=False, default=0)
    total_wins = Column(Integer, nullable=False, default=0)
    total_losses = Column(Integer, nullable=False, default=0)
    win_percentage = Column(Float, nullable=False, default=0.0)

    seasons = relationship("SeasonDetailRow", back_populates="history",
                           cascade="all, delete-orphan", order_by="SeasonDetailRow.season_number")

    __table_args__ = (
        UniqueConstraint('generation_id', 'fighter_id', 'competition_meta_id',
                         name='uq_competition_history'),
    )

class SeasonDetailRow(Base):
    __tablename__ = 'season_details'

    id = Column(Integer, primary_key=True)
    competition_history_id = Column(Integer, ForeignKey('competition_histories.id'),
                                    nullable=False, index=True)
    season_number = Column(Integer, nullable=False)
    division_number = Column(Integer, nullable=True)
    competition_season_id = Column(Integer, nullable=True)

    fights = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=True)
    win_percentage = Column(Float, nullable=False, default=0.0)
    final_position = Column(Integer, nullable=True)
    cup_result = Column(String(20), nullable=True)
    is_title = Column(Boolean, nullable=False, default=False)

    history = relationship("CompetitionHistory", back_populates="seasons")

class GlobalRank(Base):
    """One generation of the global ranking. Exactly one row is current."""
    __tablename__ = 'global_ranks'

    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False, unique=True)
    league_competition_meta_id = Column(Integer, ForeignKey('competition_metas.id'), nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    total_fighters = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=func.now())

    entries = relationship("GlobalRankEntryRow", back_populates="global_rank",
                           cascade="all, delete-orphan", order_by="GlobalRankEntryRow.rank")

    __table_args__ = (
        Index('uq_global_rank_current', 'is_current', unique=True,
              sqlite_where=text('is_current = 1'),
              postgresql_where=text('is_current')),
    )

    def __repr__(self):
        return f"<GlobalRank(version={self.version}, current={self.is_current})>"

class GlobalRankEntryRow(Base):
    __tablename__ = 'global_rank_entries'

    id = Column(Integer, primary_key=True)
    global_rank_id = Column(Integer, ForeignKey('global_ranks.id'), nullable=False, index=True)
    fighter_id = Column(Integer, ForeignKey('fighters.id'), nullable=False)
    rank = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)

    # Score breakdown
    win_percentage = Column(Float, nullable=False, default=0.0)
    league_titles = Column(Integer, nullable=False, default=0)
    champions_cup_titles = Column(Integer, nullable=False, default=0)
    invicta_cup_titles = Column(Integer, nullable=False, default=0)
    champions_cup_appearances = Column(Integer, nullable=False, default=0)
    invicta_cup_appearances = Column(Integer, nullable=False, default=0)
    division_1_appearances = Column(Integer, nullable=False, default=0)
    division_2_appearances = Column(Integer, nullable=False, default=0)
    division_3_appearances = Column(Integer, nullable=False, default=0)
    longest_win_streak = Column(Integer, nullable=False, default=0)

    # JSON lists as shown on fighter profiles
    titles = Column(Text, nullable=False, default='[]')
    cup_appearances = Column(Text, nullable=False, default='[]')
    league_appearances = Column(Text, nullable=False, default='[]')

    global_rank = relationship("GlobalRank", back_populates="entries")

    __table_args__ = (
        UniqueConstraint('global_rank_id', 'fighter_id', name='uq_global_rank_entry_fighter'),
        UniqueConstraint('global_rank_id', 'rank', name='uq_global_rank_entry_rank'),
    )

class Configuration(Base):
    """Runtime-tunable setting stored as JSON"""
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Configuration(key='{self.key}')>"

class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True)  # operator id, NULL for automated changes
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', user_id={self.user_id})>"
