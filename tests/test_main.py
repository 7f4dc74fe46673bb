# tests/test_main.py

import pytest

import main
from condor_stats.reports import StatsService
from condor_stats.ui import TerminalUI
from tests.helpers import NOW, SETTINGS, create_test_db, seed_roster


@pytest.fixture
def service(tmp_path):
    database = create_test_db(tmp_path)
    seed_roster(database)
    yield StatsService(database, now=NOW, settings=SETTINGS)
    database.close()


def _run(argv, service):
    args = main.build_parser().parse_args(argv)
    main.run(args, service, TerminalUI())


def test_condor_leaderboard_output(service, capsys):
    _run(["condor", "--metric", "kills"], service)
    out = capsys.readouterr().out
    assert "CONDOR LEADERBOARD - kills (all)" in out
    assert "Alpha" in out
    assert "Bravo" not in out


def test_gulag_output(service, capsys):
    _run(["gulag", "--inactivity-days", "0"], service)
    out = capsys.readouterr().out
    assert "GULAG (> 0 days)" in out
    assert "Charlie" in out
    assert "never" in out


def test_myrank_output(service, capsys):
    _run(["myrank", "d-a", "--period", "7d"], service)
    out = capsys.readouterr().out
    assert "RANK: Alpha (7d)" in out
    assert "steam-a" in out


def test_main_reports_validation_error(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["main.py", "--db", str(tmp_path / "cli.db"), "leaderboard", "--days", "0"])
    assert main.main() == 2
    assert "Invalid days" in capsys.readouterr().out


def test_unknown_member_exit_code(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["main.py", "--db", str(tmp_path / "cli.db"), "myrank", "ghost"])
    assert main.main() == 1
    assert "ghost" in capsys.readouterr().out
