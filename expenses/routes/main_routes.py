from flask import Blueprint, current_app, flash, render_template
from sqlalchemy.exc import SQLAlchemyError

from expenses import db
from expenses.auth import session_required
from expenses.services.aggregation import PurchaseFilters, ReportSummary
from expenses.services.purchases import build_summary

main = Blueprint("main", __name__)


@main.route("/")
@session_required
def home():
    """Render the dashboard with KPIs and chart data for every purchase."""

    try:
        summary = build_summary()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to load dashboard data")
        flash("Não foi possível carregar os dados do painel.", "danger")
        summary = ReportSummary(filters=PurchaseFilters())

    return render_template(
        "dashboard.html",
        summary=summary,
        chart_data=summary.to_dict(),
    )
