"""Rasterising the report charts for the PDF export."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional, Protocol, Tuple

import matplotlib

matplotlib.use("Agg")
from matplotlib.figure import Figure  # noqa: E402
from matplotlib.ticker import FuncFormatter  # noqa: E402

from expenses.services.aggregation import ReportSummary  # noqa: E402
from expenses.services.exceptions import ChartCaptureError  # noqa: E402
from expenses.utils.formatting import format_currency, truncate_name  # noqa: E402

CHART_COLORS = (
    "#2563eb",
    "#16a34a",
    "#ea580c",
    "#9333ea",
    "#e11d48",
    "#0891b2",
    "#ca8a04",
    "#4f46e5",
    "#be123c",
    "#1e40af",
    "#15803d",
    "#c2410c",
    "#7e22ce",
    "#be185d",
    "#0e7490",
)

# Browser pixels per inch; images are drawn at twice this for sharp PDFs.
SCREEN_DPI = 96
CAPTURE_SCALE = 2


@dataclass(frozen=True)
class ChartSpec:
    kind: str  # "donut" or "barh"
    title: str
    labels: Tuple[str, ...]
    values: Tuple[float, ...]


@dataclass(frozen=True)
class ChartImages:
    team_chart: bytes
    product_chart: bytes


class ChartRenderer(Protocol):
    def render(self, chart: ChartSpec, width: int, height: int) -> bytes:
        """Return ``chart`` as PNG bytes sized ``width`` x ``height`` pixels."""


def team_chart_spec(summary: ReportSummary) -> ChartSpec:
    return ChartSpec(
        kind="donut",
        title="Gastos por Equipe",
        labels=tuple(team.name for team in summary.team_totals),
        values=tuple(float(team.value) for team in summary.team_totals),
    )


def product_chart_spec(summary: ReportSummary) -> ChartSpec:
    return ChartSpec(
        kind="barh",
        title="Top 10 Produtos (R$)",
        labels=tuple(product.name for product in summary.product_totals),
        values=tuple(float(product.value) for product in summary.product_totals),
    )


class MatplotlibChartRenderer:
    """Draw report charts with matplotlib's Agg backend."""

    def render(self, chart: ChartSpec, width: int, height: int) -> bytes:
        figure = Figure(
            figsize=(width / SCREEN_DPI, height / SCREEN_DPI),
            facecolor="#ffffff",
        )
        axes = figure.add_subplot(1, 1, 1)
        if not chart.values:
            axes.axis("off")
            axes.text(0.5, 0.5, "Sem dados no período", ha="center", va="center")
        elif chart.kind == "donut":
            self._draw_donut(axes, chart)
        else:
            self._draw_bars(axes, chart)
        figure.tight_layout()

        buf = BytesIO()
        figure.savefig(buf, format="png", dpi=SCREEN_DPI * CAPTURE_SCALE)
        return buf.getvalue()

    @staticmethod
    def _draw_donut(axes, chart: ChartSpec) -> None:
        colors = [CHART_COLORS[i % len(CHART_COLORS)] for i in range(len(chart.values))]
        wedges, _ = axes.pie(
            chart.values,
            colors=colors,
            startangle=90,
            wedgeprops={"width": 0.5, "edgecolor": "#ffffff", "linewidth": 2},
        )
        axes.axis("equal")
        axes.legend(
            wedges,
            [truncate_name(label, 15) for label in chart.labels],
            loc="upper center",
            bbox_to_anchor=(0.5, 0.0),
            ncol=3,
            fontsize=7,
            frameon=False,
        )

    @staticmethod
    def _draw_bars(axes, chart: ChartSpec) -> None:
        # Largest bar on top.
        labels: List[str] = [truncate_name(label, 10) for label in chart.labels][::-1]
        values: List[float] = list(chart.values)[::-1]
        positions = range(len(values))
        axes.barh(positions, values, color=CHART_COLORS[0], height=0.5)
        axes.set_yticks(list(positions))
        axes.set_yticklabels(labels, fontsize=8)
        axes.xaxis.set_major_formatter(
            FuncFormatter(lambda value, _pos: format_currency(value).replace("R$ ", ""))
        )
        axes.grid(True, axis="x", linestyle="--", alpha=0.5)
        axes.set_axisbelow(True)
        for side in ("top", "right"):
            axes.spines[side].set_visible(False)


def _render_one(
    renderer: ChartRenderer, chart: ChartSpec, width: int, height: int
) -> bytes:
    try:
        image = renderer.render(chart, width, height)
    except ChartCaptureError:
        raise
    except Exception as exc:
        raise ChartCaptureError(
            "Falha ao capturar o gráfico. Abra a aba 'Gráficos', aguarde o "
            "carregamento completo e tente novamente."
        ) from exc
    if not image:
        raise ChartCaptureError("O gráfico foi gerado sem conteúdo.")
    return image


def capture_charts(
    summary: ReportSummary,
    width: Optional[int],
    height: Optional[int],
    renderer: Optional[ChartRenderer] = None,
) -> ChartImages:
    """Rasterise the team and product charts at the measured container size.

    ``width`` and ``height`` come from the charts tab in the browser; a
    missing or zero size means the tab was never laid out.

    Raises:
        ChartCaptureError: If the size is unusable or rendering fails.
    """

    if not width or not height or width <= 0 or height <= 0:
        raise ChartCaptureError(
            "Os gráficos não estão completamente renderizados. Abra a aba "
            "'Gráficos' e tente novamente."
        )
    renderer = renderer or MatplotlibChartRenderer()
    return ChartImages(
        team_chart=_render_one(renderer, team_chart_spec(summary), width, height),
        product_chart=_render_one(renderer, product_chart_spec(summary), width, height),
    )
