from datetime import date
from decimal import Decimal

import pytest

from expenses.services.purchases import NewPurchaseItem, register_purchase
from tests.utils import login_admin


@pytest.fixture
def purchases(app, teams):
    def _add(day, team, location, *items):
        return register_purchase(
            purchase_date=day,
            team_id=teams[team],
            location_name=location,
            items=[
                NewPurchaseItem(name, "unidade", Decimal(qty), Decimal(price))
                for name, qty, price in items
            ],
        ).id

    with app.app_context():
        return {
            "bread": _add(date(2024, 5, 1), "COZINHA", "Padaria Sol", ("Pão Francês", "10", "0.80")),
            "paper": _add(date(2024, 5, 10), "SECRETARIA", "Papelaria Central", ("Papel A4", "2", "27.90")),
            "sugar": _add(date(2024, 5, 11), "COZINHA", "Atacadão", ("AÇÚCAR", "5", "4.50")),
        }


def _rows(response):
    html = response.get_data(as_text=True)
    return [
        location
        for location in ("Padaria Sol", "Papelaria Central", "Atacadão")
        if location in html
    ]


def test_list_requires_login(client):
    response = client.get("/purchases")

    assert response.status_code == 302
    assert "/auth/login" in response.headers["Location"]


def test_list_orders_newest_first(client, purchases):
    login_admin(client)

    html = client.get("/purchases").get_data(as_text=True)

    assert html.index("Atacadão") < html.index("Papelaria Central") < html.index("Padaria Sol")
    assert "R$ 55,80" in html


def test_list_end_date_is_inclusive(client, purchases):
    login_admin(client)

    response = client.get("/purchases?end_date=2024-05-10")

    assert _rows(response) == ["Padaria Sol", "Papelaria Central"]


def test_list_filters_by_team_product_and_location(client, purchases, teams):
    login_admin(client)

    by_team = client.get(f"/purchases?team_id={teams['COZINHA']}")
    by_product = client.get("/purchases?product=açúcar")
    by_location = client.get("/purchases?location=central")

    assert _rows(by_team) == ["Padaria Sol", "Atacadão"]
    assert _rows(by_product) == ["Atacadão"]
    assert _rows(by_location) == ["Papelaria Central"]


def test_list_invalid_range_flashes_and_resets(client, purchases):
    login_admin(client)

    response = client.get(
        "/purchases?start_date=2024-06-01&end_date=2024-05-01",
        follow_redirects=True,
    )

    html = response.get_data(as_text=True)
    assert "A data inicial não pode ser posterior à data final." in html
    assert _rows(response) == ["Padaria Sol", "Papelaria Central", "Atacadão"]


def test_list_pagination(client, app, teams):
    with app.app_context():
        for day in range(1, 26):
            register_purchase(
                purchase_date=date(2024, 5, day),
                team_id=teams["COMPRAS"],
                location_name=f"Loja {day:02d}",
                items=[NewPurchaseItem("Copo", "pacote", Decimal("1"), Decimal("3.00"))],
            )
    login_admin(client)

    first = client.get("/purchases?per_page=20").get_data(as_text=True)
    second = client.get("/purchases?per_page=20&page=2").get_data(as_text=True)
    beyond = client.get("/purchases?per_page=20&page=5")

    assert "Loja 25" in first and "Loja 06" in first and "Loja 05" not in first
    assert "Loja 05" in second and "Loja 01" in second and "Loja 06" not in second
    assert beyond.status_code == 200
    assert "Nenhuma compra encontrada." in beyond.get_data(as_text=True)


def test_list_product_filter_matches_any_item(client, app, teams):
    with app.app_context():
        register_purchase(
            purchase_date=date(2024, 5, 12),
            team_id=teams["COMPRAS"],
            location_name="Mercado Bom Preço",
            items=[
                NewPurchaseItem("Farinha", "kg", Decimal("1"), Decimal("4.00")),
                NewPurchaseItem("Fermento Ácido", "pacote", Decimal("1"), Decimal("2.00")),
            ],
        )
    login_admin(client)

    html = client.get(
        "/purchases", query_string={"product": "ÁCIDO", "location": "bom preço"}
    ).get_data(as_text=True)

    assert "Mercado Bom Preço" in html
    assert html.count("Detalhes") == 1


def test_purchase_detail(client, purchases):
    login_admin(client)

    response = client.get(f"/purchases/{purchases['paper']}")

    html = response.get_data(as_text=True)
    assert response.status_code == 200
    assert "Papel A4" in html
    assert "R$ 27,90" in html
    assert "R$ 55,80" in html


def test_purchase_detail_missing(client, purchases):
    login_admin(client)

    assert client.get("/purchases/9999").status_code == 404
