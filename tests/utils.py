"""Utility helpers shared across the test-suite."""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Tuple

from expenses.services.aggregation import ItemRecord, PurchaseRecord
from expenses.services.purchases import compute_subtotal

_CSRF_RE = re.compile(r'name=["\']csrf_token["\'][^>]*value=["\']([^"\']+)["\']', re.IGNORECASE)


def extract_csrf_token(response: Any, *, required: bool = True) -> str:
    """Return the first CSRF token found in ``response`` HTML content."""

    if hasattr(response, "data"):
        html: str = response.data.decode("utf-8")
    elif isinstance(response, (bytes, bytearray)):
        html = response.decode("utf-8")
    else:
        html = str(response)
    match = _CSRF_RE.search(html)
    if not match:
        if required:
            raise AssertionError("CSRF token not found in response")
        return ""
    return match.group(1)


def login(client, email: str, password: str, *, follow_redirects: bool = True):
    """Helper to login a user in tests, respecting CSRF protection."""

    login_page = client.get("/auth/login")
    token = extract_csrf_token(login_page, required=False)
    form_data = {"email": email, "password": password}
    if token:
        form_data["csrf_token"] = token
    return client.post(
        "/auth/login",
        data=form_data,
        follow_redirects=follow_redirects,
    )


def login_admin(client, **kwargs):
    return login(client, "admin@example.com", "adminpass", **kwargs)


def make_record(
    team_id: Optional[int],
    items: Iterable[Tuple[str, str, str]],
    *,
    team_name: Optional[str] = None,
    purchase_date: date = date(2024, 5, 10),
    location_name: str = "Atacadão",
    record_id: Optional[int] = None,
) -> PurchaseRecord:
    """Build a purchase record from ``(product, quantity, unit_price)`` triples."""

    return PurchaseRecord(
        id=record_id,
        purchase_date=purchase_date,
        team_id=team_id,
        team_name=team_name or f"Equipe {team_id}",
        location_name=location_name,
        items=tuple(
            ItemRecord(
                product_name=product,
                unit_of_measure="unidade",
                quantity=Decimal(quantity),
                unit_price=Decimal(price),
                subtotal=compute_subtotal(quantity, price),
            )
            for product, quantity, price in items
        ),
    )
