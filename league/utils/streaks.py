"""
Streak Tracker

Replays decided fights in chronological order and derives, for every fighter
involved, the list of win/lose streaks and the head-to-head history against
every opponent.

The replay is an explicit fold: each step takes the current mapping of
fighter states and one fight and returns a new mapping in which only the two
participants have new (immutable) state records. Fighters not involved in a
fight keep the very same state object.

Scopes:
- "global": one streak chain per fighter across all competitions
- "competition": one streak chain per fighter and competition
"""

from typing import Dict, Iterable, List, Optional

from league.data_models.fight import FightRecord
from league.data_models.streaks import (
    FightDetail, FighterStreakState, OpponentHistoryEntry, StreakRecord, StreakType
)
from league.utils.exceptions import FightOrderError, InvalidStateError
from league.utils.logger import setup_logger

logger = setup_logger(__name__)

StreakStates = Dict[int, FighterStreakState]


class StreakTracker:
    """Chronological fold of fights into streak and opponent history state."""

    GLOBAL_SCOPE = "global"
    COMPETITION_SCOPE = "competition"

    def __init__(self, scope: str = GLOBAL_SCOPE, check_order: bool = True):
        """
        Initialize the tracker.

        Args:
            scope: "global" or "competition"
            check_order: Raise FightOrderError when a fight precedes the previous one
        """
        if scope not in (self.GLOBAL_SCOPE, self.COMPETITION_SCOPE):
            raise ValueError(f"Unsupported streak scope: {scope}")
        self.scope = scope
        self.check_order = check_order

    def replay(self, fights: Iterable[FightRecord]) -> StreakStates:
        """
        Replay fights from an empty state.

        Args:
            fights: Fights in strict chronological order. Pending fights are skipped.

        Returns:
            Mapping of fighter id to the fighter's streaks and opponent history

        Raises:
            FightOrderError: If check_order is set and the input is out of order
        """
        states: StreakStates = {}
        previous: Optional[FightRecord] = None
        processed = 0

        for fight in fights:
            if not fight.is_decided:
                continue
            if self.check_order and previous is not None \
                    and fight.chronological_key < previous.chronological_key:
                raise FightOrderError(fight.fight_identifier, previous.fight_identifier)
            states = self.apply(states, fight)
            previous = fight
            processed += 1

        logger.debug(f"Replayed {processed} fights for {len(states)} fighters ({self.scope} scope)")
        return states

    def apply(self, states: StreakStates, fight: FightRecord) -> StreakStates:
        """
        Fold a single decided fight into the state mapping.

        Args:
            states: Current mapping, left untouched
            fight: Decided fight

        Returns:
            New mapping with the winner's and loser's state replaced
        """
        if not fight.is_decided:
            raise InvalidStateError(fight.fight_identifier, "fight has no winner")
        if fight.winner_id not in fight.participants:
            raise InvalidStateError(fight.fight_identifier, "winner is not one of the two fighters")

        winner_id = fight.winner_id
        loser_id = fight.loser_id

        new_states = dict(states)
        new_states[winner_id] = self._update_fighter(
            states.get(winner_id) or FighterStreakState(fighter_id=winner_id),
            StreakType.WIN, loser_id, fight
        )
        new_states[loser_id] = self._update_fighter(
            states.get(loser_id) or FighterStreakState(fighter_id=loser_id),
            StreakType.LOSE, winner_id, fight
        )
        return new_states

    def _active_index(self, streaks: List[StreakRecord], competition_id: int) -> Optional[int]:
        for index, streak in enumerate(streaks):
            if not streak.active:
                continue
            if self.scope == self.GLOBAL_SCOPE or streak.competition_id == competition_id:
                return index
        return None

    def _update_fighter(self, state: FighterStreakState, outcome: StreakType,
                        opponent_id: int, fight: FightRecord) -> FighterStreakState:
        context = fight.context
        streaks = list(state.streaks)

        active_index = self._active_index(streaks, fight.competition_id)
        if active_index is not None and streaks[active_index].type == outcome:
            streaks[active_index] = streaks[active_index].extend(opponent_id)
        else:
            if active_index is not None:
                streaks[active_index] = streaks[active_index].close(context)
            streaks.append(StreakRecord.open(outcome, context, opponent_id))

        detail = FightDetail(
            competition_id=fight.competition_id,
            season=fight.season,
            division=fight.division,
            round=fight.round,
            fight_id=fight.fight_id,
            fight_identifier=fight.fight_identifier,
            is_winner=outcome == StreakType.WIN,
        )
        history = list(state.opponent_history)
        for index, entry in enumerate(history):
            if entry.opponent_id == opponent_id:
                history[index] = entry.record(detail)
                break
        else:
            history.append(OpponentHistoryEntry(opponent_id=opponent_id).record(detail))

        return FighterStreakState(
            fighter_id=state.fighter_id,
            streaks=tuple(streaks),
            opponent_history=tuple(history),
        )
