import pytest

from league.config import Config
from league.main import build_parser, main


@pytest.fixture
def memory_database(monkeypatch):
    monkeypatch.setattr(Config, 'DATABASE_URL', 'sqlite://')


def test_parser_reads_division_arguments():
    args = build_parser().parse_args(
        ['rebuild-standings', '--competition', '1', '--season', '7', '--division', '2']
    )
    assert (args.command, args.competition, args.season, args.division) == ('rebuild-standings', 1, 7, 2)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_init_db(memory_database, capsys):
    assert main(['init-db']) == 0
    assert 'Database ready' in capsys.readouterr().out


def test_seed_config(memory_database, capsys):
    assert main(['seed-config']) == 0
    assert 'Seeded 4 configuration parameters' in capsys.readouterr().out


def test_engine_errors_are_reported(memory_database, capsys):
    assert main(['check-completion', '--league-season', '1']) == 1
    assert 'Competition 1 does not exist.' in capsys.readouterr().err


def test_replay_on_an_empty_database(memory_database, capsys):
    assert main(['replay-streaks']) == 0
    assert 'Streak generation 1 is current' in capsys.readouterr().out
