"""Reading and writing purchases."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from expenses import db
from expenses.models import Purchase, PurchaseItem, Team
from expenses.services.aggregation import (
    PurchaseFilters,
    PurchaseRecord,
    ReportSummary,
    summarize,
)
from expenses.utils.activity import record_activity

_CENT = Decimal("0.01")


class PurchaseRegistrationError(Exception):
    """Raised when a purchase and its items cannot be stored."""


@dataclass
class NewPurchaseItem:
    product_name: str
    unit_of_measure: str
    quantity: Decimal
    unit_price: Decimal
    notes: Optional[str] = None


def compute_subtotal(quantity, unit_price) -> Decimal:
    """Return ``quantity * unit_price`` rounded half-up to cents."""

    try:
        value = Decimal(str(quantity)) * Decimal(str(unit_price))
    except InvalidOperation as exc:
        raise PurchaseRegistrationError("Quantidade ou preço inválido.") from exc
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _validate_items(items: Sequence[NewPurchaseItem]) -> None:
    if not items:
        raise PurchaseRegistrationError("Adicione pelo menos um item.")
    for position, item in enumerate(items, start=1):
        if not (item.product_name or "").strip():
            raise PurchaseRegistrationError(
                f"Item {position}: nome do produto é obrigatório."
            )
        if not (item.unit_of_measure or "").strip():
            raise PurchaseRegistrationError(
                f"Item {position}: unidade de medida é obrigatória."
            )
        if item.quantity is None or Decimal(str(item.quantity)) <= 0:
            raise PurchaseRegistrationError(
                f"Item {position}: quantidade deve ser maior que zero."
            )
        if item.unit_price is None or Decimal(str(item.unit_price)) <= 0:
            raise PurchaseRegistrationError(
                f"Item {position}: preço unitário deve ser maior que zero."
            )


def register_purchase(
    *,
    purchase_date: date,
    team_id: int,
    location_name: str,
    items: Sequence[NewPurchaseItem],
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Purchase:
    """Store a purchase together with its items in one transaction.

    Either the purchase and every item are committed, or nothing is.

    Raises:
        PurchaseRegistrationError: If validation fails, the team does not
            exist, or the database rejects the write.
    """

    _validate_items(items)
    if not (location_name or "").strip():
        raise PurchaseRegistrationError("Local da compra é obrigatório.")

    try:
        team = db.session.get(Team, team_id)
        if team is None:
            raise PurchaseRegistrationError("Equipe não encontrada.")

        purchase = Purchase(
            purchase_date=purchase_date,
            team=team,
            location_name=location_name.strip(),
            notes=(notes or "").strip() or None,
            user_id=user_id,
        )
        for position, item in enumerate(items):
            purchase.items.append(
                PurchaseItem(
                    position=position,
                    product_name=item.product_name.strip(),
                    unit_of_measure=item.unit_of_measure.strip(),
                    quantity=Decimal(str(item.quantity)),
                    unit_price=Decimal(str(item.unit_price)),
                    subtotal=compute_subtotal(item.quantity, item.unit_price),
                    notes=(item.notes or "").strip() or None,
                )
            )
        db.session.add(purchase)
        db.session.flush()
        # The audit row shares the purchase transaction.
        record_activity(
            f"Registered purchase {purchase.id} with {len(items)} item(s)",
            user_id,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PurchaseRegistrationError(
            "Não foi possível registrar a compra. Tente novamente."
        ) from exc
    return purchase


def purchase_query(
    filters: Optional[PurchaseFilters] = None, *, include_product: bool = True
):
    """Return the ordered purchase query narrowed by ``filters``.

    Substring filters use ``ilike``; on SQLite the connection's ``lower``
    is replaced by Python's so accented letters fold as well.
    """

    query = Purchase.query.options(
        selectinload(Purchase.team),
        selectinload(Purchase.items),
    )
    if filters is not None:
        if filters.team_id:
            query = query.filter(Purchase.team_id == filters.team_id)
        if filters.location:
            query = query.filter(
                Purchase.location_name.ilike(f"%{filters.location}%")
            )
        if include_product and filters.product:
            query = query.filter(
                Purchase.items.any(
                    PurchaseItem.product_name.ilike(f"%{filters.product}%")
                )
            )
        if filters.start_date:
            query = query.filter(Purchase.purchase_date >= filters.start_date)
        if filters.end_exclusive:
            query = query.filter(Purchase.purchase_date < filters.end_exclusive)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())


def load_purchase_records(
    filters: Optional[PurchaseFilters] = None, *, include_product: bool = True
) -> List[PurchaseRecord]:
    query = purchase_query(filters, include_product=include_product)
    return [PurchaseRecord.from_model(purchase) for purchase in query.all()]


def build_summary(filters: Optional[PurchaseFilters] = None) -> ReportSummary:
    """Load the purchases matching ``filters`` and aggregate them."""

    filters = filters or PurchaseFilters()
    records = load_purchase_records(filters, include_product=False)
    return summarize(records, filters)


def get_purchase(purchase_id: int) -> Optional[Purchase]:
    return (
        Purchase.query.options(
            selectinload(Purchase.team), selectinload(Purchase.items)
        )
        .filter(Purchase.id == purchase_id)
        .one_or_none()
    )
