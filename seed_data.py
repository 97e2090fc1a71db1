import os

from expenses import DEFAULT_REPORT_TITLE, DEFAULT_TIMEZONE, create_app, create_admin_user, db
from expenses.models import Setting
from expenses.services.teams import seed_teams


def _upsert_setting(name: str, value: str) -> None:
    setting = Setting.query.filter_by(name=name).first()
    if setting is None:
        db.session.add(Setting(name=name, value=value))
    else:
        setting.value = value


def seed_initial_data() -> None:
    """Seed the database with an admin user, the teams and default settings."""
    app = create_app([])
    with app.app_context():
        create_admin_user()
        created = seed_teams()
        _upsert_setting(
            "DEFAULT_TIMEZONE", os.getenv("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)
        )
        _upsert_setting("REPORT_TITLE", os.getenv("REPORT_TITLE", DEFAULT_REPORT_TITLE))
        db.session.commit()
        print(f"Admin user, {len(created)} team(s) and settings created.")


if __name__ == "__main__":
    seed_initial_data()
