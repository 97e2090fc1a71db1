"""Building the downloadable PDF report.

Two modes exist. ``SIMPLE`` lays out the KPI summary, the team and product
tables and the purchase list. ``COMPLETE`` additionally embeds the two
charts, rasterised at the size the charts tab reported. Chart capture runs
before any layout so a failed capture never yields a partial file.
"""

from __future__ import annotations

import base64
import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from expenses.services.aggregation import ReportSummary
from expenses.services.charts import ChartImages, ChartRenderer, capture_charts
from expenses.services.exceptions import DocumentAssemblyError
from expenses.services.pdf import render_template_pdf
from expenses.utils.formatting import format_date, format_datetime

logger = logging.getLogger(__name__)

REPORT_TEMPLATE = "reports/pdf/report.html"
FILENAME_PREFIX = "relatorio-ejc"

# A4 portrait in millimetres, minus the top and footer margins.
PAGE_HEIGHT_MM = 297
PRINTABLE_HEIGHT_MM = PAGE_HEIGHT_MM - 15 - 20

# Fixed offsets used to decide where sections break.
HEADER_HEIGHT_MM = 60  # title, subtitle and KPI block
SECTION_HEADING_MM = 10
TABLE_ROW_MM = 8
CHART_HEIGHT_MM = 135  # full-width image at a 4:3 ratio
CHART_GAP_MM = 10


class ExportMode(enum.Enum):
    SIMPLE = "simple"
    COMPLETE = "complete"


@dataclass(frozen=True)
class LayoutSection:
    key: str
    height_mm: float
    force_new_page: bool = False


@dataclass(frozen=True)
class PlacedSection:
    key: str
    page: int
    offset_mm: float
    new_page: bool


@dataclass
class ExportResult:
    filename: str
    content: bytes
    mimetype: str = "application/pdf"


@dataclass
class ReportDocument:
    title: str
    subtitle: str
    generated_at: datetime
    summary: ReportSummary
    mode: ExportMode
    layout: List[PlacedSection] = field(default_factory=list)
    charts: Optional[ChartImages] = None

    @property
    def generated_label(self) -> str:
        return format_datetime(self.generated_at)

    @property
    def page_count(self) -> int:
        return plan_page_count(self.layout, self.sections)

    @property
    def sections(self) -> List[LayoutSection]:
        return build_sections(self.summary, self.mode)

    def placement(self, key: str) -> Optional[PlacedSection]:
        for placed in self.layout:
            if placed.key == key:
                return placed
        return None


def _table_height(rows: int) -> float:
    return SECTION_HEADING_MM + TABLE_ROW_MM * (rows + 1)


def build_sections(summary: ReportSummary, mode: ExportMode) -> List[LayoutSection]:
    """Return the document sections in order with their estimated heights."""

    chart_block = CHART_HEIGHT_MM + CHART_GAP_MM if mode is ExportMode.COMPLETE else 0
    sections = [
        LayoutSection("teams", chart_block + _table_height(len(summary.team_totals))),
        LayoutSection(
            "products",
            chart_block + _table_height(len(summary.product_totals)),
            # The product chart always opens its own page.
            force_new_page=mode is ExportMode.COMPLETE,
        ),
    ]
    if summary.purchases:
        sections.append(
            LayoutSection(
                "purchases",
                _table_height(len(summary.purchases)),
                force_new_page=True,
            )
        )
    return sections


def plan_layout(
    sections: Sequence[LayoutSection],
    *,
    start_offset: float = HEADER_HEIGHT_MM,
    page_height: float = PRINTABLE_HEIGHT_MM,
) -> List[PlacedSection]:
    """Assign each section a page and a vertical offset.

    A section opens a fresh page when it is marked ``force_new_page`` or
    when the content before it already runs past ``page_height``.
    """

    placed: List[PlacedSection] = []
    page, offset = 1, float(start_offset)
    for section in sections:
        overflowed = offset > page_height
        new_page = offset > 0 and (section.force_new_page or overflowed)
        if new_page:
            page += math.ceil(offset / page_height) if overflowed else 1
            offset = 0.0
        placed.append(PlacedSection(section.key, page, offset, new_page))
        offset += section.height_mm
    return placed


def plan_page_count(
    placed: Sequence[PlacedSection],
    sections: Sequence[LayoutSection],
    *,
    page_height: float = PRINTABLE_HEIGHT_MM,
) -> int:
    if not placed:
        return 1
    heights = {section.key: section.height_mm for section in sections}
    last = placed[-1]
    end = last.offset_mm + heights.get(last.key, 0)
    return last.page + max(math.ceil(end / page_height) - 1, 0)


def report_subtitle(summary: ReportSummary) -> str:
    filters = summary.filters
    if filters.start_date and filters.end_date:
        return (
            f"Relatório de Custos de {format_date(filters.start_date)} "
            f"a {format_date(filters.end_date)}"
        )
    return "Relatório de Custos"


def report_filename(now: datetime) -> str:
    return f"{FILENAME_PREFIX}-{now.date().isoformat()}.pdf"


def _data_uri(image: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


def build_document(
    summary: ReportSummary,
    mode: ExportMode,
    *,
    title: str,
    charts: Optional[ChartImages] = None,
    now: Optional[datetime] = None,
) -> ReportDocument:
    if mode is ExportMode.COMPLETE and charts is None:
        raise DocumentAssemblyError("Complete reports require chart images.")
    sections = build_sections(summary, mode)
    return ReportDocument(
        title=title,
        subtitle=report_subtitle(summary),
        generated_at=now or datetime.now(),
        summary=summary,
        mode=mode,
        layout=plan_layout(sections),
        charts=charts,
    )


def render_document(document: ReportDocument) -> bytes:
    """Lay out ``document`` as HTML and convert it to PDF bytes.

    Raises:
        DocumentAssemblyError: If the template or the PDF engine fails.
    """

    images = {}
    if document.charts is not None:
        images = {
            "team_chart": _data_uri(document.charts.team_chart),
            "product_chart": _data_uri(document.charts.product_chart),
        }
    try:
        return render_template_pdf(
            REPORT_TEMPLATE,
            {"document": document, "summary": document.summary, "images": images},
        )
    except Exception as exc:
        raise DocumentAssemblyError("Não foi possível gerar o relatório em PDF.") from exc


def export_report(
    summary: ReportSummary,
    mode: ExportMode,
    *,
    title: str,
    chart_width: Optional[int] = None,
    chart_height: Optional[int] = None,
    renderer: Optional[ChartRenderer] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    """Produce the PDF report for ``summary``.

    Raises:
        ChartCaptureError: In complete mode, if the charts cannot be captured.
        DocumentAssemblyError: If the PDF cannot be assembled.
    """

    now = now or datetime.now()
    charts = None
    if mode is ExportMode.COMPLETE:
        charts = capture_charts(summary, chart_width, chart_height, renderer)

    document = build_document(summary, mode, title=title, charts=charts, now=now)
    content = render_document(document)
    if not content:
        raise DocumentAssemblyError("O PDF gerado está vazio.")
    logger.info(
        "Rendered %s report with %d purchase(s) across %d page(s)",
        mode.value,
        len(summary.purchases),
        document.page_count,
    )
    return ExportResult(filename=report_filename(now), content=content)
