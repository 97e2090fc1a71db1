from flask import (
    Blueprint,
    current_app,
    flash,
    jsonify,
    make_response,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from expenses import db
from expenses.auth import session_required
from expenses.forms import ReportFilterForm
from expenses.services.aggregation import (
    FilterError,
    PurchaseFilters,
    ReportSummary,
)
from expenses.services.exceptions import ChartCaptureError, ReportExportError
from expenses.services.purchases import build_summary
from expenses.services.report_export import ExportMode, export_report
from expenses.utils.activity import log_activity

report = Blueprint("report", __name__)

REPORT_TABS = ("summary", "charts", "purchases")


def _report_title() -> str:
    title = (request.values.get("title") or "").strip()
    return title or current_app.config["REPORT_TITLE"]


def _report_url(filters: PurchaseFilters, **extra):
    args = filters.to_args()
    title = (request.values.get("title") or "").strip()
    if title:
        args["title"] = title
    args.update(extra)
    return url_for("report.view_report", **args)


@report.route("/reports")
@session_required
def view_report():
    """Show the report tabs for the filtered purchases."""
    try:
        filters = PurchaseFilters.from_args(request.args)
    except FilterError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("report.view_report"))

    active_tab = request.args.get("tab", "summary")
    if active_tab not in REPORT_TABS:
        active_tab = "summary"

    try:
        summary = build_summary(filters)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to build report")
        flash("Não foi possível carregar o relatório.", "danger")
        summary = ReportSummary(filters=filters)

    form = ReportFilterForm(formdata=request.args)
    return render_template(
        "reports/index.html",
        form=form,
        summary=summary,
        chart_data=summary.to_dict(),
        filters=filters,
        filter_args=filters.to_args(),
        title=_report_title(),
        active_tab=active_tab,
    )


@report.route("/reports/data")
@session_required
def report_data():
    """Return the report summary as JSON for the charts."""
    try:
        filters = PurchaseFilters.from_args(request.args)
    except FilterError as exc:
        return jsonify({"success": False, "message": str(exc)}), 400
    try:
        summary = build_summary(filters)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to build report data")
        return (
            jsonify(
                {"success": False, "message": "Não foi possível carregar os dados."}
            ),
            500,
        )
    return jsonify(summary.to_dict())


def _export(mode: ExportMode, chart_width=None, chart_height=None):
    try:
        filters = PurchaseFilters.from_args(request.values)
    except FilterError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("report.view_report"))

    try:
        summary = build_summary(filters)
        result = export_report(
            summary,
            mode,
            title=_report_title(),
            chart_width=chart_width,
            chart_height=chart_height,
        )
    except ChartCaptureError as exc:
        current_app.logger.warning("Chart capture failed: %s", exc)
        flash(str(exc), "danger")
        return redirect(_report_url(filters, tab="charts"))
    except ReportExportError as exc:
        current_app.logger.exception("Failed to export %s report", mode.value)
        flash(str(exc), "danger")
        return redirect(_report_url(filters))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to load purchases for export")
        flash("Não foi possível carregar os dados do relatório.", "danger")
        return redirect(_report_url(filters))

    log_activity(f"Exported {mode.value} report", current_user.id)
    response = make_response(result.content)
    response.headers["Content-Type"] = result.mimetype
    response.headers["Content-Disposition"] = (
        f"attachment; filename={result.filename}"
    )
    return response


@report.route("/reports/export/simple")
@session_required
def export_simple():
    """Download the report without charts."""
    return _export(ExportMode.SIMPLE)


@report.route("/reports/export/complete", methods=["POST"])
@session_required
def export_complete():
    """Download the report with the charts rasterised at the posted size."""
    return _export(
        ExportMode.COMPLETE,
        chart_width=request.form.get("chart_width", type=int),
        chart_height=request.form.get("chart_height", type=int),
    )
