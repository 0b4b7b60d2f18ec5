from __future__ import annotations

from pathlib import Path

from roster.database import Database
from scripts import create_user


def test_create_user_script_derives_display_name(tmp_path: Path, monkeypatch, capsys) -> None:
    db_path = tmp_path / "roster.sqlite3"
    monkeypatch.setattr(create_user.getpass, "getpass", lambda prompt: "Sup3rSecurePwd!")

    code = create_user.main(["Grace", "Hopper", "grace@example.com", "--db", str(db_path)])

    assert code == 0
    assert "(@grace.hopper)" in capsys.readouterr().out
    database = Database(db_path)
    stored = database.get_user_by_email("grace@example.com")
    assert stored is not None
    assert stored.display_name == "grace.hopper"


def test_create_user_script_reports_taken_display_name(tmp_path: Path, monkeypatch, capsys) -> None:
    db_path = tmp_path / "roster.sqlite3"
    monkeypatch.setattr(create_user.getpass, "getpass", lambda prompt: "Sup3rSecurePwd!")

    code = create_user.main(
        ["Grace", "Hopper", "grace@example.com", "--db", str(db_path), "--display-name", "root"]
    )

    assert code == 1
    assert "already taken" in capsys.readouterr().err
