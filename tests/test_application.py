from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from roster import create_application


def test_application_enables_token_auth_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("ROSTER_API_TOKENS", "ci:env-token")
    app = create_application(
        database_path=str(tmp_path / "roster.sqlite3"),
        config_path=str(tmp_path / "missing.yaml"),
    )

    with TestClient(app) as client:
        assert client.get("/health").status_code == 401
        response = client.get("/health", headers={"Authorization": "Bearer env-token"})
        assert response.status_code == 200


def test_application_applies_configured_policy(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("ROSTER_API_TOKENS", raising=False)
    config_path = tmp_path / "roster.yaml"
    config_path.write_text('naming:\n  separator: "-"\n', encoding="utf-8")

    app = create_application(
        database_path=str(tmp_path / "roster.sqlite3"),
        config_path=str(config_path),
    )

    with TestClient(app) as client:
        response = client.post(
            "/users",
            json={"first_name": "Ada", "last_name": "Lovelace", "password": "Sup3rSecurePwd!"},
        )
        assert response.status_code == 201, response.text
        assert response.json()["display_name"] == "ada-lovelace"
