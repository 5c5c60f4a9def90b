import pytest

from league.constants import CupResults
from league.data_models.fight import FightRecord
from league.utils.fight_identifier import (
    cup_result_for_stage, extract_stage_code, is_final_stage, parse_fight_identifier, stage_order
)


def test_parse_league_identifier():
    parsed = parse_fight_identifier('S7-D1-R3-F2')
    assert parsed.competition_code is None
    assert (parsed.season, parsed.division, parsed.round, parsed.fight_number) == (7, 1, 3, 2)
    assert not parsed.is_cup


def test_parse_prefixed_league_identifier():
    parsed = parse_fight_identifier('ifc-s7-d2-r1-f4')
    assert parsed.competition_code == 'IFC'
    assert (parsed.season, parsed.division, parsed.round, parsed.fight_number) == (7, 2, 1, 4)


def test_parse_cup_identifier():
    parsed = parse_fight_identifier('CC-S6-FN-F1')
    assert parsed.competition_code == 'CC'
    assert parsed.season == 6
    assert parsed.stage == 'FN'
    assert parsed.division is None and parsed.round is None
    assert parsed.is_cup


@pytest.mark.parametrize('identifier', ['', 'S7-D1', 'S7-X1-R1-F1', 'CC-S6-FN', 'S7-FN-F1', 'CC-6-FN-F1'])
def test_parse_rejects_malformed_identifiers(identifier):
    with pytest.raises(ValueError):
        parse_fight_identifier(identifier)


def test_final_stage_detection():
    assert is_final_stage('CC-S6-FN-F1')
    assert is_final_stage('IC-S2-GRANDFINAL-F1')
    assert not is_final_stage('CC-S6-SF-F1')
    assert not is_final_stage('CC-S6-SEMIFINAL-F1')
    assert not is_final_stage('CC-S3-R3-F1')
    assert not is_final_stage('S6-D1-R9-F1')
    assert not is_final_stage('garbage')


def test_extract_stage_code():
    assert extract_stage_code('CC-S6-QF-F3') == 'QF'
    assert extract_stage_code('S6-D1-R1-F1') is None


def test_stage_order_is_chronological():
    stages = ['FN', 'R1', 'SF', 'QF', 'R2']
    assert sorted(stages, key=stage_order) == ['R1', 'R2', 'QF', 'SF', 'FN']


def test_cup_result_for_last_stage():
    assert cup_result_for_stage('FN') == CupResults.FINALS
    assert cup_result_for_stage('SF') == CupResults.SEMIFINALS
    assert cup_result_for_stage('QF') == CupResults.QUARTERFINALS
    assert cup_result_for_stage('R1') == CupResults.ROUND_1


def test_chronological_key_orders_league_before_cup_within_a_season():
    league_last = FightRecord.from_identifier('IFC-S1-D3-R9-F5', 1, 2, 1, competition_id=1)
    cup_first = FightRecord.from_identifier('CC-S1-R1-F1', 1, 2, 1, competition_id=2)
    next_season = FightRecord.from_identifier('IFC-S2-D1-R1-F1', 1, 2, 1, competition_id=1)

    assert league_last.chronological_key < cup_first.chronological_key < next_season.chronological_key


def test_chronological_key_orders_rounds_then_fight_numbers():
    fights = [
        FightRecord.from_identifier(identifier, 1, 2, None, competition_id=1)
        for identifier in ('S1-D1-R2-F1', 'S1-D1-R1-F2', 'S1-D1-R1-F1', 'S1-D1-R10-F1')
    ]
    ordered = sorted(fights, key=lambda fight: fight.chronological_key)
    assert [fight.fight_identifier for fight in ordered] == [
        'S1-D1-R1-F1', 'S1-D1-R1-F2', 'S1-D1-R2-F1', 'S1-D1-R10-F1'
    ]
