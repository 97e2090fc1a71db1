from __future__ import annotations

import base64
from datetime import date, datetime
from decimal import Decimal

import pytest

from expenses.services import charts
from expenses.services.aggregation import PurchaseFilters, summarize
from expenses.services.exceptions import ChartCaptureError, DocumentAssemblyError
from expenses.services.purchases import NewPurchaseItem, build_summary, register_purchase
from expenses.services.report_export import (
    HEADER_HEIGHT_MM,
    ExportMode,
    LayoutSection,
    build_sections,
    export_report,
    plan_layout,
    plan_page_count,
    report_filename,
    report_subtitle,
)
from tests.utils import login_admin, make_record


@pytest.fixture
def fake_pdf(monkeypatch):
    """Replace WeasyPrint with a writer that echoes the HTML."""

    captured = {}

    class FakeHTML:
        def __init__(self, string: str, base_url: str | None = None):
            captured["html"] = string
            captured["base_url"] = base_url
            self.string = string

        def write_pdf(self, stream):
            stream.write(b"%PDF-FAKE\n")
            stream.write(self.string.encode())

    monkeypatch.setattr("expenses.services.pdf.HTML", FakeHTML)
    return captured


class FakeRenderer:
    calls = []

    def render(self, chart, width, height):
        FakeRenderer.calls.append((chart.kind, width, height))
        return f"PNG:{chart.kind}".encode()


@pytest.fixture
def fake_renderer(monkeypatch):
    FakeRenderer.calls = []
    monkeypatch.setattr(charts, "MatplotlibChartRenderer", FakeRenderer)
    return FakeRenderer


@pytest.fixture
def stored_purchases(app, teams):
    with app.app_context():
        register_purchase(
            purchase_date=date(2024, 5, 3),
            team_id=teams["COZINHA"],
            location_name="Atacadão",
            items=[NewPurchaseItem("Arroz", "kg", Decimal("2"), Decimal("5.00"))],
        )
        register_purchase(
            purchase_date=date(2024, 5, 4),
            team_id=teams["SECRETARIA"],
            location_name="Papelaria",
            items=[NewPurchaseItem("Papel A4", "pacote", Decimal("1"), Decimal("3.00"))],
        )


def test_layout_keeps_short_sections_on_first_page():
    placed = plan_layout(
        [LayoutSection("teams", 40), LayoutSection("products", 50)], page_height=262
    )

    assert [(p.key, p.page, p.offset_mm, p.new_page) for p in placed] == [
        ("teams", 1, HEADER_HEIGHT_MM, False),
        ("products", 1, HEADER_HEIGHT_MM + 40, False),
    ]


def test_layout_breaks_after_overflowing_section():
    placed = plan_layout(
        [LayoutSection("teams", 300), LayoutSection("products", 10)],
        start_offset=0,
        page_height=262,
    )

    assert placed[1].page == 3
    assert placed[1].offset_mm == 0
    assert placed[1].new_page


def test_layout_section_ending_on_page_boundary():
    placed = plan_layout(
        [LayoutSection("teams", 524), LayoutSection("products", 10)],
        start_offset=0,
        page_height=262,
    )

    assert placed[1].page == 3
    assert placed[1].new_page


def test_layout_forced_break():
    placed = plan_layout(
        [LayoutSection("teams", 10), LayoutSection("purchases", 10, force_new_page=True)],
        page_height=262,
    )

    assert placed[1].page == 2
    assert placed[1].new_page


def test_page_count_follows_last_section():
    sections = [LayoutSection("teams", 10), LayoutSection("purchases", 600, force_new_page=True)]

    placed = plan_layout(sections, page_height=262)

    assert plan_page_count(placed, sections, page_height=262) == 4


def test_sections_by_mode():
    empty = summarize([])
    full = summarize([make_record(1, [("Arroz", "1", "2.00")])])

    assert [s.key for s in build_sections(empty, ExportMode.SIMPLE)] == ["teams", "products"]
    complete = build_sections(full, ExportMode.COMPLETE)
    assert [s.key for s in complete] == ["teams", "products", "purchases"]
    assert complete[1].force_new_page
    assert not build_sections(full, ExportMode.SIMPLE)[1].force_new_page


def test_subtitle_and_filename():
    ranged = summarize(
        [], PurchaseFilters(start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))
    )

    assert report_subtitle(ranged) == "Relatório de Custos de 01/05/2024 a 31/05/2024"
    assert report_subtitle(summarize([])) == "Relatório de Custos"
    assert report_filename(datetime(2024, 6, 2, 15, 0)) == "relatorio-ejc-2024-06-02.pdf"


def test_simple_export_with_no_purchases(app, fake_pdf):
    with app.test_request_context("/"):
        result = export_report(
            summarize([]),
            ExportMode.SIMPLE,
            title="EJC - Relatório de Custos",
            now=datetime(2024, 6, 2, 15, 30),
        )

    html = fake_pdf["html"]
    assert result.content.startswith(b"%PDF")
    assert result.filename == "relatorio-ejc-2024-06-02.pdf"
    assert "Total Gasto" in html
    assert "R$ 0,00" in html
    assert "Gastos por Equipe" in html
    assert "Lista de Compras" not in html
    assert 'class="new-page"' not in html
    assert "Relatório gerado em 02/06/2024 15:30:00" in html
    assert 'counter(page) " de " counter(pages)' in html


def test_complete_export_embeds_charts(app, fake_pdf):
    summary = summarize([make_record(1, [("Arroz", "1", "2.00")], team_name="COZINHA")])

    with app.test_request_context("/"):
        export_report(
            summary,
            ExportMode.COMPLETE,
            title="Relatório",
            chart_width=800,
            chart_height=400,
            renderer=FakeRenderer(),
        )

    html = fake_pdf["html"]
    assert "data:image/png;base64," + base64.b64encode(b"PNG:donut").decode() in html
    assert "data:image/png;base64," + base64.b64encode(b"PNG:barh").decode() in html
    assert 'class="new-page"' in html


@pytest.mark.parametrize("width, height", [(0, 400), (800, 0), (None, None)])
def test_complete_export_needs_chart_size(app, fake_pdf, width, height):
    with app.test_request_context("/"):
        with pytest.raises(ChartCaptureError):
            export_report(
                summarize([]),
                ExportMode.COMPLETE,
                title="Relatório",
                chart_width=width,
                chart_height=height,
                renderer=FakeRenderer(),
            )

    assert "html" not in fake_pdf


def test_pdf_engine_failure_is_wrapped(app, monkeypatch):
    class BrokenHTML:
        def __init__(self, string, base_url=None):
            pass

        def write_pdf(self, stream):
            raise RuntimeError("cairo exploded")

    monkeypatch.setattr("expenses.services.pdf.HTML", BrokenHTML)

    with app.test_request_context("/"):
        with pytest.raises(DocumentAssemblyError):
            export_report(summarize([]), ExportMode.SIMPLE, title="Relatório")


def test_simple_export_route(client, stored_purchases, fake_pdf):
    login_admin(client)

    response = client.get("/reports/export/simple?title=Encontro+2024")

    assert response.status_code == 200
    assert response.headers["Content-Type"] == "application/pdf"
    assert "attachment; filename=relatorio-ejc-" in response.headers["Content-Disposition"]
    html = fake_pdf["html"]
    assert "Encontro 2024" in html
    assert "R$ 13,00" in html
    assert "Papelaria" in html


def test_simple_export_route_with_no_purchases(client, fake_pdf):
    login_admin(client)

    response = client.get("/reports/export/simple")

    assert response.status_code == 200
    assert "EJC - Relatório de Custos" in fake_pdf["html"]


def test_complete_export_route_without_size_flashes(client, stored_purchases, teams, fake_pdf):
    login_admin(client)

    response = client.post(
        "/reports/export/complete",
        data={"team_id": str(teams["COZINHA"]), "chart_width": "0", "chart_height": "0"},
    )

    assert response.status_code == 302
    assert "tab=charts" in response.headers["Location"]
    assert f"team_id={teams['COZINHA']}" in response.headers["Location"]
    assert "html" not in fake_pdf

    page = client.get(response.headers["Location"])
    assert "completamente renderizados" in page.get_data(as_text=True)


def test_complete_export_route(client, stored_purchases, fake_pdf, fake_renderer):
    login_admin(client)

    response = client.post(
        "/reports/export/complete",
        data={"chart_width": "900", "chart_height": "450"},
    )

    assert response.status_code == 200
    assert response.data.startswith(b"%PDF")
    assert fake_renderer.calls == [("donut", 900, 450), ("barh", 900, 450)]


def test_export_route_reports_pdf_failure(client, stored_purchases, monkeypatch):
    class BrokenHTML:
        def __init__(self, string, base_url=None):
            pass

        def write_pdf(self, stream):
            raise OSError("no fonts")

    monkeypatch.setattr("expenses.services.pdf.HTML", BrokenHTML)
    login_admin(client)

    response = client.get("/reports/export/simple?product=arroz", follow_redirects=True)

    assert response.status_code == 200
    assert "Não foi possível gerar o relatório em PDF." in response.get_data(as_text=True)


def test_export_requires_login(client, fake_pdf):
    response = client.get("/reports/export/simple")

    assert response.status_code == 302
    assert "html" not in fake_pdf


def test_report_tables_show_totals(client, stored_purchases):
    login_admin(client)

    html = client.get("/reports").get_data(as_text=True)

    assert html.count("<tfoot>") == 2
    assert html.count("100.00%") == 2
    assert "76.92%" in html and "23.08%" in html


def test_report_product_totals_follow_product_filter(app, stored_purchases):
    with app.app_context():
        summary = build_summary(PurchaseFilters(product="arroz"))

    assert summary.product_sum == Decimal("10.00")
    assert summary.product_sum_percentage == "76.92%"
    assert summary.team_sum_percentage == "100.00%"
