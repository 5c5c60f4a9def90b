import pytest

from league.data_models.ranking import (
    CompetitionRecord, CupAppearance, DivisionAppearance, FighterCareer, LeagueAppearance,
    SeasonDetail, TitleCount, TitleDetail
)
from league.utils.ranking import RankingCalculator

LEAGUE, CC, IC = 10, 20, 30


def league_season(season, division=1):
    return SeasonDetail(season=season, division=division, fights=0, wins=0, losses=0,
                        points=0, win_percentage=0.0)


def cup_season(season):
    return SeasonDetail(season=season, division=None, fights=0, wins=0, losses=0,
                        points=None, win_percentage=0.0)


@pytest.fixture
def calculator():
    return RankingCalculator(LEAGUE, CC, IC)


@pytest.fixture
def veteran():
    """60% wins, one league title, two CC seasons, three division 1 seasons, best run of 10"""
    return FighterCareer(
        fighter_id=1,
        competition_records=(
            CompetitionRecord(
                competition_id=LEAGUE,
                total_fights=10,
                total_wins=6,
                total_losses=4,
                win_percentage=60.0,
                season_details=tuple(league_season(season) for season in (1, 2, 3)),
                titles=(TitleDetail(season=2, division=1),),
            ),
            CompetitionRecord(
                competition_id=CC,
                season_details=(cup_season(1), cup_season(2)),
            ),
        ),
        longest_win_streak=10,
    )


def test_score_formula(calculator, veteran):
    breakdown = calculator.breakdown(veteran)

    assert breakdown.win_percentage == 60.0
    assert breakdown.league_titles == 1
    assert breakdown.champions_cup_titles == 0
    assert breakdown.invicta_cup_titles == 0
    assert breakdown.champions_cup_appearances == 2
    assert breakdown.invicta_cup_appearances == 0
    assert breakdown.division_1_appearances == 3
    assert breakdown.division_2_appearances == 0
    assert breakdown.longest_win_streak == 10
    # 6 + 5 + 0 + 0 + 6 + 0 + 3 + 0 + 0 + 2
    assert calculator.score(breakdown) == pytest.approx(22.0)
    assert calculator.calculate_score(veteran) == pytest.approx(22.0)


def test_fighter_without_fights_scores_zero(calculator):
    career = FighterCareer(fighter_id=5)
    assert calculator.breakdown(career).win_percentage == 0.0
    assert calculator.calculate_score(career) == 0.0


def test_lower_divisions_are_weighted_less(calculator):
    career = FighterCareer(
        fighter_id=2,
        competition_records=(
            CompetitionRecord(
                competition_id=LEAGUE,
                season_details=(league_season(1, 3), league_season(2, 2), league_season(3, 2)),
            ),
        ),
    )
    # 0.5 + 2 * 0.75
    assert calculator.calculate_score(career) == pytest.approx(2.0)


def test_score_is_rounded(calculator):
    career = FighterCareer(
        fighter_id=3,
        competition_records=(CompetitionRecord(competition_id=LEAGUE, total_fights=3, total_wins=1),),
    )
    assert calculator.calculate_score(career) == 3.33


def test_score_uses_the_exact_win_percentage(calculator):
    # 5 of 11 is 45.4545...%, shown as 45.45 but scored as 4.545... -> 4.55
    career = FighterCareer(
        fighter_id=4,
        competition_records=(CompetitionRecord(competition_id=LEAGUE, total_fights=11, total_wins=5),),
    )
    assert calculator.breakdown(career).win_percentage == 45.45
    assert calculator.calculate_score(career) == 4.55
    assert calculator.rank([career])[0].score == 4.55


def test_weights_can_be_overridden(veteran):
    calculator = RankingCalculator(LEAGUE, CC, IC, weights={'league_title': 10})
    assert calculator.calculate_score(veteran) == pytest.approx(27.0)


def test_unknown_weight_is_rejected():
    with pytest.raises(ValueError):
        RankingCalculator(LEAGUE, CC, IC, weights={'cup_title': 1})


def test_ranks_are_contiguous_and_best_first(calculator, veteran):
    careers = [FighterCareer(fighter_id=9), veteran, FighterCareer(fighter_id=4)]
    entries = calculator.rank(careers)

    assert [entry.rank for entry in entries] == [1, 2, 3]
    assert [entry.fighter_id for entry in entries] == [1, 4, 9]


def test_ties_fall_back_to_win_percentage_titles_then_id(calculator):
    # All score 3.0 or 4.0 by different routes
    careers = [
        FighterCareer(fighter_id=7, competition_records=(
            CompetitionRecord(competition_id=CC, season_details=(cup_season(1),)),)),
        FighterCareer(fighter_id=3, competition_records=(
            CompetitionRecord(competition_id=CC, season_details=(cup_season(1),)),)),
        FighterCareer(fighter_id=8, competition_records=(
            CompetitionRecord(competition_id=LEAGUE, total_fights=10, total_wins=3),)),
        FighterCareer(fighter_id=6, competition_records=(
            CompetitionRecord(competition_id=LEAGUE,
                              season_details=tuple(league_season(s) for s in (1, 2, 3, 4))),)),
        FighterCareer(fighter_id=5, competition_records=(
            CompetitionRecord(competition_id=IC, titles=(TitleDetail(season=1),)),)),
    ]
    entries = calculator.rank(careers)

    assert [entry.score for entry in entries] == [4.0, 4.0, 3.0, 3.0, 3.0]
    assert [entry.fighter_id for entry in entries] == [5, 6, 8, 3, 7]


def test_ranking_is_deterministic(calculator, veteran):
    careers = [FighterCareer(fighter_id=i) for i in (4, 2, 3)] + [veteran]
    first = calculator.rank(careers)
    second = calculator.rank(list(reversed(careers)))
    assert first == second


def test_entry_lists(calculator, veteran):
    entry = calculator.rank([veteran])[0]

    assert entry.titles == (TitleCount(competition_id=LEAGUE, number_of_titles=1),)
    assert entry.cup_appearances == (CupAppearance(competition_id=CC, appearances=2),)
    assert entry.league_appearances == (
        LeagueAppearance(competition_id=LEAGUE,
                         division_appearances=(DivisionAppearance(division=1, appearances=3),)),
    )


def test_recalculate_builds_an_unpromoted_snapshot(calculator, veteran):
    snapshot = calculator.recalculate([veteran, FighterCareer(fighter_id=2)])

    assert snapshot.league_competition_id == LEAGUE
    assert snapshot.version is None
    assert not snapshot.is_current
    assert snapshot.total_fighters == 2
    assert snapshot.entry_for(1).rank == 1
    assert snapshot.top(1)[0].fighter_id == 1
