from pathlib import Path

from main import _parse_args, main
from roster.database import Database


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "0.0.0.0", "--port", "8080", "--db", "roster.sqlite3"])
    assert args.command == "serve"
    assert args.host == "0.0.0.0"
    assert args.port == 8080
    assert args.db_path == "roster.sqlite3"


def test_suggest_accepts_single_name() -> None:
    args = _parse_args(["suggest", "Cher"])
    assert args.command == "suggest"
    assert args.first_name == "Cher"
    assert args.last_name == ""


def test_suggest_prints_display_name(tmp_path: Path, capsys) -> None:
    db_path = tmp_path / "roster.sqlite3"

    assert main(["suggest", "Ada", "Lovelace", "--db", str(db_path)]) == 0
    assert capsys.readouterr().out.strip() == "ada.lovelace (base)"


def test_backfill_and_list_users(tmp_path: Path, capsys) -> None:
    db_path = tmp_path / "roster.sqlite3"
    database = Database(db_path)
    database.initialize()
    user = database.create_user("Ada", "Lovelace", "ada@example.com", "Sup3rSecurePwd!")

    assert main(["backfill-display-names", "--db", str(db_path)]) == 0
    assert "Assigned display names to 0 user(s)." in capsys.readouterr().out

    assert main(["list-users", "--db", str(db_path)]) == 0
    output = capsys.readouterr().out
    assert "1 user(s) found:" in output
    assert user.display_name in output


def test_invalid_configuration_is_reported(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "roster.yaml"
    config_path.write_text("naming:\n  on_exhausted: retry\n", encoding="utf-8")

    code = main(["init-db", "--db", str(tmp_path / "roster.sqlite3"), "--config", str(config_path)])

    assert code == 1
    assert "on_exhausted" in capsys.readouterr().err
