from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import pfledger.cli as cli_mod
from pfledger.cli import app
from tests.helpers.db import bootstrap_sqlite_db, count_transactions, statement_csv

CAFE = "07 Feb 26,08 Feb 26,-45.30,1234,Debit,CORNER CAFE SYDNEY,,Corner Cafe"


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "ledger.db")


@pytest.fixture()
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "statement.csv"
    path.write_bytes(statement_csv(CAFE))
    return path


def test_import_csv_prints_summary(db_url: str, csv_file: Path, capsys: pytest.CaptureFixture):
    assert cli_mod.cmd_import_csv(str(csv_file), database_url=db_url) == 0
    assert "import #1: rows=1 inserted=1 skipped=0" in capsys.readouterr().out

    assert cli_mod.cmd_import_csv(str(csv_file), database_url=db_url) == 0
    assert "import #2: rows=1 inserted=0 skipped=1" in capsys.readouterr().out


def test_import_csv_enforces_size_limit(
    db_url: str, csv_file: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
):
    monkeypatch.setenv("PFLEDGER_MAX_IMPORT_BYTES", "10")
    assert cli_mod.cmd_import_csv(str(csv_file), database_url=db_url) == 1
    assert "import limit is 10" in capsys.readouterr().err
    assert count_transactions(db_url) == 0


def test_import_csv_missing_file(db_url: str, tmp_path: Path, capsys: pytest.CaptureFixture):
    assert cli_mod.cmd_import_csv(str(tmp_path / "nope.csv"), database_url=db_url) == 1
    assert "File not found" in capsys.readouterr().err


def test_import_csv_headerless_file(db_url: str, tmp_path: Path, capsys: pytest.CaptureFixture):
    empty = tmp_path / "empty.csv"
    empty.write_bytes(b"")
    assert cli_mod.cmd_import_csv(str(empty), database_url=db_url) == 1
    assert "Failed to parse CSV" in capsys.readouterr().err


def test_suggest_edit_flow(db_url: str, csv_file: Path, tmp_path: Path, capsys):
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps([{"contains": "cafe", "category": "Dining"}]), encoding="utf-8")
    assert cli_mod.cmd_seed_rules(str(rules), database_url=db_url) == 0
    assert cli_mod.cmd_import_csv(str(csv_file), database_url=db_url) == 0
    capsys.readouterr()

    assert cli_mod.cmd_suggest(1, database_url=db_url) == 0
    assert "Suggestion: Dining\t[rule] rule contains: cafe" in capsys.readouterr().out

    assert cli_mod.cmd_edit(1, category="Coffee", merchant="Corner Cafe", database_url=db_url) == 0
    assert "Saved transaction 1." in capsys.readouterr().out

    assert cli_mod.cmd_suggest(1, database_url=db_url) == 0
    assert "Suggestion: Coffee\t[override] merchant override" in capsys.readouterr().out

    assert cli_mod.cmd_list_transactions(database_url=db_url) == 0
    out = capsys.readouterr().out
    assert "2026-02-07\t-$45.30\tCoffee\tCorner Cafe" in out


def test_suggest_unknown_transaction(db_url: str, capsys: pytest.CaptureFixture):
    assert cli_mod.cmd_suggest(42, database_url=db_url) == 1
    assert "transaction 42 not found" in capsys.readouterr().err


def test_assist_unavailable_is_not_an_error(
    db_url: str, csv_file: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
):
    cli_mod.cmd_import_csv(str(csv_file), database_url=db_url)
    capsys.readouterr()
    monkeypatch.setenv("PFLEDGER_ASSIST_COMMAND", "definitely-not-a-real-program-pfledger")

    assert cli_mod.cmd_assist(1, database_url=db_url) == 0
    assert "No suggestion available." in capsys.readouterr().out


def test_assist_unknown_backend(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys):
    monkeypatch.setenv("PFLEDGER_ASSIST_BACKEND", "carrier-pigeon")
    assert cli_mod.cmd_assist(1, database_url=db_url) == 1
    assert "PFLEDGER_ASSIST_BACKEND" in capsys.readouterr().err


def test_typer_app_end_to_end(db_url: str, csv_file: Path, monkeypatch: pytest.MonkeyPatch):
    # The root callback loads .env from the working directory; keep it empty.
    monkeypatch.chdir(csv_file.parent)
    runner = CliRunner()

    result = runner.invoke(
        app, ["import-csv", "--csv-path", str(csv_file), "--database-url", db_url]
    )
    assert result.exit_code == 0, result.output
    assert "inserted=1" in result.output

    result = runner.invoke(app, ["imports", "--database-url", db_url])
    assert result.exit_code == 0
    assert "statement.csv" in result.output

    result = runner.invoke(app, ["rules", "--database-url", db_url])
    assert result.exit_code == 0
    assert "Error" not in result.output


def test_init_db_creates_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(app, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "Schema ready." in result.output
    assert count_transactions(url) == 0
