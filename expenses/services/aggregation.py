"""Grouping and summing of purchases into team, product and KPI views.

Everything here works on plain value objects so it can run on rows loaded
from the database or on records built in tests. Aggregates are recomputed
for every request and are never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

UNKNOWN_TEAM_NAME = "Desconhecido"
TOP_PRODUCTS_LIMIT = 10

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


class FilterError(ValueError):
    """Raised when filter parameters cannot be parsed."""


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


@dataclass(frozen=True)
class ItemRecord:
    product_name: str
    unit_of_measure: str
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    notes: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_model(cls, item) -> "ItemRecord":
        return cls(
            id=item.id,
            product_name=item.product_name,
            unit_of_measure=item.unit_of_measure,
            quantity=_to_decimal(item.quantity),
            unit_price=_to_decimal(item.unit_price),
            subtotal=_to_decimal(item.subtotal),
            notes=item.notes,
        )


@dataclass(frozen=True)
class PurchaseRecord:
    purchase_date: date
    team_id: Optional[int]
    team_name: str
    location_name: str
    items: Tuple[ItemRecord, ...] = ()
    notes: Optional[str] = None
    id: Optional[int] = None

    @property
    def total(self) -> Decimal:
        return purchase_total(self)

    @classmethod
    def from_model(cls, purchase) -> "PurchaseRecord":
        team = purchase.team
        return cls(
            id=purchase.id,
            purchase_date=purchase.purchase_date,
            team_id=purchase.team_id,
            team_name=team.name if team is not None else UNKNOWN_TEAM_NAME,
            location_name=purchase.location_name,
            notes=purchase.notes,
            items=tuple(ItemRecord.from_model(item) for item in purchase.items),
        )


@dataclass
class TeamTotal:
    team_id: Optional[int]
    name: str
    value: Decimal = _ZERO


@dataclass
class ProductTotal:
    name: str
    value: Decimal = _ZERO


@dataclass(frozen=True)
class KPISet:
    total_spend: Decimal = _ZERO
    purchase_count: int = 0
    item_count: int = 0


@dataclass(frozen=True)
class PurchaseFilters:
    team_id: Optional[int] = None
    product: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.team_id, self.product, self.location, self.start_date, self.end_date)
        )

    @property
    def end_exclusive(self) -> Optional[date]:
        """First day after the range; compared with a strict ``<``."""
        if self.end_date is None:
            return None
        return self.end_date + timedelta(days=1)

    def without_product(self) -> "PurchaseFilters":
        return PurchaseFilters(
            team_id=self.team_id,
            location=self.location,
            start_date=self.start_date,
            end_date=self.end_date,
        )

    def to_args(self) -> dict:
        """Return the filters as query-string arguments for ``url_for``."""
        args = {}
        if self.team_id:
            args["team_id"] = self.team_id
        if self.product:
            args["product"] = self.product
        if self.location:
            args["location"] = self.location
        if self.start_date:
            args["start_date"] = self.start_date.isoformat()
        if self.end_date:
            args["end_date"] = self.end_date.isoformat()
        return args

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "PurchaseFilters":
        """Build filters from request arguments.

        Blank values and the ``"all"`` team choice mean "no filter".

        Raises:
            FilterError: If a date or team id is malformed, or the start
                date falls after the end date.
        """

        def _text(name: str) -> Optional[str]:
            value = args.get(name)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        def _date(name: str, label: str) -> Optional[date]:
            value = _text(name)
            if value is None:
                return None
            try:
                return date.fromisoformat(value)
            except ValueError as exc:
                raise FilterError(f"Data {label} inválida.") from exc

        team_raw = _text("team_id")
        team_id = None
        if team_raw and team_raw != "all":
            try:
                team_id = int(team_raw)
            except ValueError as exc:
                raise FilterError("Equipe inválida.") from exc

        start_date = _date("start_date", "inicial")
        end_date = _date("end_date", "final")
        if start_date and end_date and start_date > end_date:
            raise FilterError("A data inicial não pode ser posterior à data final.")

        return cls(
            team_id=team_id,
            product=_text("product"),
            location=_text("location"),
            start_date=start_date,
            end_date=end_date,
        )


@dataclass
class ReportSummary:
    filters: PurchaseFilters
    team_totals: List[TeamTotal] = field(default_factory=list)
    product_totals: List[ProductTotal] = field(default_factory=list)
    kpis: KPISet = field(default_factory=KPISet)
    purchases: List[PurchaseRecord] = field(default_factory=list)

    def team_percentage(self, team: TeamTotal) -> str:
        return format_percentage(team.value, self.kpis.total_spend)

    def product_percentage(self, product: ProductTotal) -> str:
        return format_percentage(product.value, self.kpis.total_spend)

    @property
    def team_sum_percentage(self) -> str:
        team_sum = sum((team.value for team in self.team_totals), _ZERO)
        return format_percentage(team_sum, self.kpis.total_spend)

    @property
    def product_sum(self) -> Decimal:
        """Spend covered by the ranked products."""
        return sum((product.value for product in self.product_totals), _ZERO)

    @property
    def product_sum_percentage(self) -> str:
        return format_percentage(self.product_sum, self.kpis.total_spend)

    def to_dict(self) -> dict:
        """Return a JSON-serialisable view used by the chart scripts."""
        total = self.kpis.total_spend
        return {
            "kpis": {
                "total_spend": float(total),
                "purchase_count": self.kpis.purchase_count,
                "item_count": self.kpis.item_count,
            },
            "teams": [
                {
                    "id": team.team_id,
                    "name": team.name,
                    "value": float(team.value),
                    "percentage": float(percentage(team.value, total)),
                }
                for team in self.team_totals
            ],
            "products": [
                {
                    "name": product.name,
                    "value": float(product.value),
                    "percentage": float(percentage(product.value, total)),
                }
                for product in self.product_totals
            ],
        }


def purchase_total(purchase: PurchaseRecord) -> Decimal:
    """Return the sum of the stored item subtotals of ``purchase``."""

    return sum((item.subtotal for item in purchase.items), _ZERO)


def _within_dates(value, filters: PurchaseFilters) -> bool:
    start = filters.start_date
    end_exclusive = filters.end_exclusive
    if isinstance(value, datetime):
        if start is not None and value < datetime.combine(start, datetime.min.time()):
            return False
        if end_exclusive is not None and value >= datetime.combine(
            end_exclusive, datetime.min.time()
        ):
            return False
        return True
    if start is not None and value < start:
        return False
    if end_exclusive is not None and not value < end_exclusive:
        return False
    return True


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def filter_purchases(
    purchases: Iterable[PurchaseRecord],
    filters: Optional[PurchaseFilters],
    *,
    include_product: bool = True,
) -> List[PurchaseRecord]:
    """Return the purchases that satisfy every active predicate in ``filters``.

    A purchase passes the product predicate when any of its items has a name
    containing the substring, ignoring case.
    """

    purchases = list(purchases)
    if filters is None or filters.is_empty:
        return purchases

    selected = []
    for purchase in purchases:
        if filters.team_id and purchase.team_id != filters.team_id:
            continue
        if filters.location and not _contains(purchase.location_name, filters.location):
            continue
        if not _within_dates(purchase.purchase_date, filters):
            continue
        if (
            include_product
            and filters.product
            and not any(
                _contains(item.product_name, filters.product) for item in purchase.items
            )
        ):
            continue
        selected.append(purchase)
    return selected


def team_totals(purchases: Iterable[PurchaseRecord]) -> List[TeamTotal]:
    """Group spend by team id, largest first; ties keep first-seen order."""

    totals: dict = {}
    for purchase in purchases:
        entry = totals.get(purchase.team_id)
        if entry is None:
            entry = totals[purchase.team_id] = TeamTotal(
                team_id=purchase.team_id,
                name=purchase.team_name or UNKNOWN_TEAM_NAME,
            )
        entry.value += purchase_total(purchase)
    return sorted(totals.values(), key=lambda team: team.value, reverse=True)


def product_totals(
    purchases: Iterable[PurchaseRecord],
    product: Optional[str] = None,
    limit: int = TOP_PRODUCTS_LIMIT,
) -> List[ProductTotal]:
    """Group spend by exact product name and keep the ``limit`` largest.

    Names are compared as-is: "Arroz" and "arroz" are separate groups. When
    ``product`` is given only items whose name contains it (ignoring case)
    are counted.
    """

    totals: dict = {}
    for purchase in purchases:
        for item in purchase.items:
            if product and not _contains(item.product_name, product):
                continue
            entry = totals.get(item.product_name)
            if entry is None:
                entry = totals[item.product_name] = ProductTotal(name=item.product_name)
            entry.value += item.subtotal
    ranked = sorted(totals.values(), key=lambda entry: entry.value, reverse=True)
    return ranked[:limit]


def kpis(purchases: Sequence[PurchaseRecord]) -> KPISet:
    """Return total spend, purchase count and item count for ``purchases``."""

    grouped = team_totals(purchases)
    return KPISet(
        total_spend=sum((team.value for team in grouped), _ZERO),
        purchase_count=len(purchases),
        item_count=sum(len(purchase.items) for purchase in purchases),
    )


def percentage(value, total) -> Decimal:
    """Return ``value`` as a percentage of ``total`` rounded to cents.

    A zero total yields ``0`` instead of a division error.
    """

    total = _to_decimal(total)
    if total == 0:
        return _ZERO
    return (_to_decimal(value) / total * 100).quantize(_CENT, rounding=ROUND_HALF_UP)


def format_percentage(value, total) -> str:
    if _to_decimal(total) == 0:
        return "0%"
    return f"{percentage(value, total):.2f}%"


def summarize(
    purchases: Iterable[PurchaseRecord],
    filters: Optional[PurchaseFilters] = None,
    *,
    limit: int = TOP_PRODUCTS_LIMIT,
) -> ReportSummary:
    """Compute every report view for ``purchases`` under ``filters``.

    Team totals and KPIs ignore the product predicate while the product
    ranking and the purchase list honour it.
    """

    filters = filters or PurchaseFilters()
    base = filter_purchases(purchases, filters, include_product=False)
    listed = filter_purchases(base, filters) if filters.product else base
    return ReportSummary(
        filters=filters,
        team_totals=team_totals(base),
        product_totals=product_totals(base, filters.product, limit=limit),
        kpis=kpis(base),
        purchases=listed,
    )
