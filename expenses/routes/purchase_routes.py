from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from expenses import db
from expenses.auth import session_required
from expenses.forms import PurchaseFilterForm, PurchaseForm
from expenses.services import purchases as purchase_service
from expenses.services.aggregation import FilterError, PurchaseFilters
from expenses.services.purchases import NewPurchaseItem, PurchaseRegistrationError
from expenses.utils.pagination import build_pagination_args, get_per_page

purchase = Blueprint("purchase", __name__)


def _items_from_form(form):
    return [
        NewPurchaseItem(
            product_name=entry.form.product_name.data,
            unit_of_measure=entry.form.unit_of_measure.data,
            quantity=entry.form.quantity.data,
            unit_price=entry.form.unit_price.data,
            notes=entry.form.notes.data,
        )
        for entry in form.items
    ]


def _removed_row(form):
    for index, entry in enumerate(form.items.entries):
        if entry.form.remove.data:
            return index
    return None


@purchase.route("/purchases/register", methods=["GET", "POST"])
@session_required
def register_purchase():
    """Register a purchase and its items."""
    form = PurchaseForm()
    if request.method == "POST" and form.add_item.data:
        form.items.append_entry()
        return render_template("purchases/register.html", form=form)

    if request.method == "POST":
        index = _removed_row(form)
        if index is not None:
            # At least one row always stays on the form.
            if len(form.items.entries) > 1:
                form.items.entries.pop(index)
            return render_template("purchases/register.html", form=form)

    if form.validate_on_submit():
        try:
            created = purchase_service.register_purchase(
                purchase_date=form.purchase_date.data,
                team_id=form.team.data,
                location_name=form.location_name.data,
                notes=form.notes.data,
                items=_items_from_form(form),
                user_id=current_user.id,
            )
        except PurchaseRegistrationError as exc:
            if exc.__cause__ is not None:
                current_app.logger.exception("Failed to register purchase")
            flash(str(exc), "danger")
            return render_template("purchases/register.html", form=form)

        flash("Compra registrada com sucesso!", "success")
        return render_template("purchases/registered.html", purchase=created)

    return render_template("purchases/register.html", form=form)


@purchase.route("/purchases")
@session_required
def view_purchases():
    """List purchases matching the filters, newest first."""
    try:
        filters = PurchaseFilters.from_args(request.args)
    except FilterError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("purchase.view_purchases"))

    form = PurchaseFilterForm(formdata=request.args)
    page = request.args.get("page", 1, type=int)
    per_page = get_per_page()
    try:
        purchases = purchase_service.purchase_query(filters).paginate(
            page=page, per_page=per_page, error_out=False
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to load purchases")
        flash("Não foi possível carregar as compras.", "danger")
        purchases = None

    return render_template(
        "purchases/list.html",
        form=form,
        filters=filters,
        purchases=purchases,
        pagination_args=build_pagination_args(per_page),
    )


@purchase.route("/purchases/<int:purchase_id>")
@session_required
def view_purchase(purchase_id):
    """Show the items of a single purchase."""
    try:
        record = purchase_service.get_purchase(purchase_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to load purchase %s", purchase_id)
        flash("Não foi possível carregar a compra.", "danger")
        return redirect(url_for("purchase.view_purchases"))
    if record is None:
        abort(404)
    return render_template("purchases/detail.html", purchase=record)
