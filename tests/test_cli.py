from datetime import timedelta

from typer.testing import CliRunner

from school_library import cli
from school_library.cli import app
from school_library.database import utc_now
from school_library.person import Identity

runner = CliRunner()


def test_init_db_creates_store(db_file):
    result = runner.invoke(app, ["--db", db_file, "init-db"])
    assert result.exit_code == 0
    assert "Database ready" in result.stdout


def test_seed_then_seed_again(db_file):
    first = runner.invoke(app, ["--db", db_file, "seed"])
    assert first.exit_code == 0
    assert "Demo data loaded" in first.stdout

    second = runner.invoke(app, ["--db", db_file, "seed"])
    assert second.exit_code == 0
    assert "nothing loaded" in second.stdout


def test_scan_toggles(db_file, student):
    result = runner.invoke(app, ["--db", db_file, "scan", "STU_P1"])
    assert result.exit_code == 0
    assert "Ada Lovelace checked in" in result.stdout

    result = runner.invoke(app, ["--db", db_file, "scan", "STU_P1"])
    assert "Ada Lovelace checked out" in result.stdout


def test_scan_unknown_barcode_fails(db_file):
    result = runner.invoke(app, ["--db", db_file, "scan", "NOBODY"])
    assert result.exit_code == 1
    assert "User not found" in result.stdout


def test_overdue_table(db_file, ledger, book, student):
    assert "No overdue loans." in runner.invoke(app, ["--db", db_file, "overdue"]).stdout

    ledger.borrow(book.id, Identity.of(student), now=utc_now() - timedelta(days=20, hours=12))
    result = runner.invoke(app, ["--db", db_file, "overdue"])
    assert result.exit_code == 0
    assert "Lovelace" in result.stdout
    assert "7" in result.stdout


def test_stats(db_file, book):
    result = runner.invoke(app, ["--db", db_file, "stats"])
    assert result.exit_code == 0
    assert "totalCopies" in result.stdout


def test_serve_runs_uvicorn(db_file, monkeypatch):
    calls = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(cli.settings, "db_file", cli.settings.db_file)
    monkeypatch.setenv("LIBRARY_DB_FILE", "unused.sqlite")

    result = runner.invoke(app, ["--db", db_file, "serve", "--port", "8123"])

    assert result.exit_code == 0
    assert calls == [("school_library.api:app", {"host": cli.settings.api_host, "port": 8123, "reload": False,
                                                 "log_level": cli.settings.log_level.lower()})]
    assert cli.settings.db_file == db_file
