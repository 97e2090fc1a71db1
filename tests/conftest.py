from __future__ import annotations

import os
import sys

import pytest

from expenses import create_app, create_admin_user, db
from expenses.models import Setting
from expenses.services.teams import seed_teams

# Ensure the package is importable when tests change directories
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, BASE_DIR)

TEST_TEAMS = ("COZINHA", "SECRETARIA", "COMPRAS")


@pytest.fixture
def app(tmp_path, monkeypatch):
    os.environ.setdefault("SECRET_KEY", "testsecret")
    os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
    os.environ.setdefault("ADMIN_PASS", "adminpass")
    monkeypatch.setenv("RATELIMIT_ENABLED", "0")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "expenses.db"))

    app = create_app(["--demo"])
    app.config.update({"TESTING": True, "WTF_CSRF_ENABLED": False})

    with app.app_context():
        db.create_all()
        create_admin_user()
        if Setting.query.filter_by(name="DEFAULT_TIMEZONE").count() == 0:
            db.session.add(Setting(name="DEFAULT_TIMEZONE", value="UTC"))
        db.session.commit()
        seed_teams(TEST_TEAMS)

        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def teams(app):
    """Map of team name to id for the seeded test teams."""
    from expenses.models import Team

    with app.app_context():
        return {team.name: team.id for team in Team.query.all()}
