import pytest

from league.data_models.fight import FightRecord
from league.data_models.streaks import StreakType
from league.utils.exceptions import FightOrderError, InvalidStateError
from league.utils.streaks import StreakTracker

X, Y, Z = 1, 2, 3
LEAGUE, CUP = 10, 20


def fight(identifier, fighter1, fighter2, winner, competition_id=LEAGUE):
    return FightRecord.from_identifier(identifier, fighter1, fighter2, winner, competition_id=competition_id)


def test_win_streak_closes_when_fighter_loses():
    fights = [
        fight('S1-D1-R1-F1', X, Y, X),
        fight('S1-D1-R2-F1', X, Z, X),
        fight('S1-D1-R3-F1', X, Y, X),
        fight('S1-D1-R4-F1', X, Z, Z),
    ]
    states = StreakTracker().replay(fights)
    win, lose = states[X].streaks

    assert win.type == StreakType.WIN
    assert win.count == 3
    assert not win.active
    assert win.opponents == (Y, Z, Y)
    assert win.start.fight_identifier == 'S1-D1-R1-F1'
    assert win.end.fight_identifier == 'S1-D1-R4-F1'

    assert lose.type == StreakType.LOSE
    assert lose.count == 1
    assert lose.active
    assert lose.end is None


def test_at_most_one_active_streak_in_global_scope():
    fights = [
        fight('S1-D1-R1-F1', X, Y, X),
        fight('S1-D1-R2-F1', X, Y, Y),
        fight('CC-S1-SF-F1', X, Z, X, competition_id=CUP),
        fight('CC-S1-FN-F1', X, Y, X, competition_id=CUP),
    ]
    states = StreakTracker().replay(fights)

    for state in states.values():
        assert sum(1 for streak in state.streaks if streak.active) == 1
    # The cup wins extend the same chain as league fights
    assert [(s.type, s.count) for s in states[X].streaks] == [
        (StreakType.WIN, 1), (StreakType.LOSE, 1), (StreakType.WIN, 2)
    ]


def test_competition_scope_keeps_one_chain_per_competition():
    fights = [
        fight('S1-D1-R1-F1', X, Y, X),
        fight('CC-S1-FN-F1', X, Y, Y, competition_id=CUP),
        fight('S2-D1-R1-F1', X, Y, X),
    ]
    states = StreakTracker(scope=StreakTracker.COMPETITION_SCOPE).replay(fights)

    league_streak = states[X].active_streak(LEAGUE)
    cup_streak = states[X].active_streak(CUP)
    assert (league_streak.type, league_streak.count) == (StreakType.WIN, 2)
    assert (cup_streak.type, cup_streak.count) == (StreakType.LOSE, 1)


def test_opponent_history_is_symmetric():
    fights = [
        fight('S1-D1-R1-F1', X, Y, X),
        fight('S1-D1-R2-F1', Y, X, X),
        fight('S1-D1-R3-F1', X, Y, Y),
        fight('S1-D1-R4-F1', X, Z, Z),
    ]
    states = StreakTracker().replay(fights)

    x_vs_y = states[X].history_against(Y)
    y_vs_x = states[Y].history_against(X)
    assert x_vs_y.total_fights == y_vs_x.total_fights == 3
    assert x_vs_y.total_wins == y_vs_x.total_losses == 2
    assert x_vs_y.total_losses == y_vs_x.total_wins == 1
    assert x_vs_y.win_percentage == 67
    assert y_vs_x.win_percentage == 33
    assert [detail.is_winner for detail in x_vs_y.details] == [True, True, False]

    assert states[Z].history_against(X).win_percentage == 100
    assert states[Z].history_against(Y) is None


def test_fighters_outside_the_fight_keep_their_state():
    tracker = StreakTracker()
    states = tracker.replay([fight('S1-D1-R1-F1', X, Y, X)])
    z_states = tracker.apply(states, fight('S1-D1-R1-F2', Y, Z, Z))

    assert z_states[X] is states[X]
    assert states[Y].active_streak().type == StreakType.LOSE
    assert states[Y].active_streak().count == 1
    assert z_states[Y].active_streak().count == 2


def test_out_of_order_fights_raise():
    fights = [
        fight('S1-D1-R2-F1', X, Y, X),
        fight('S1-D1-R1-F1', X, Y, Y),
    ]
    with pytest.raises(FightOrderError):
        StreakTracker().replay(fights)


def test_order_check_can_be_disabled():
    fights = [
        fight('S1-D1-R2-F1', X, Y, X),
        fight('S1-D1-R1-F1', X, Y, Y),
    ]
    states = StreakTracker(check_order=False).replay(fights)
    assert len(states[X].streaks) == 2


def test_pending_fights_are_skipped():
    states = StreakTracker().replay([fight('S1-D1-R1-F1', X, Y, None)])
    assert states == {}


def test_apply_rejects_undecided_fight():
    with pytest.raises(InvalidStateError):
        StreakTracker().apply({}, fight('S1-D1-R1-F1', X, Y, None))


def test_unknown_scope():
    with pytest.raises(ValueError):
        StreakTracker(scope='division')


def test_longest_win_streak():
    fights = [
        fight('S1-D1-R1-F1', X, Y, X),
        fight('S1-D1-R2-F1', X, Y, X),
        fight('S1-D1-R3-F1', X, Y, Y),
        fight('S1-D1-R4-F1', X, Y, X),
    ]
    states = StreakTracker().replay(fights)
    assert states[X].longest_win_streak == 2
    assert states[Y].longest_win_streak == 1
