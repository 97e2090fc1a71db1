import pytest

from expenses.services.aggregation import summarize
from expenses.services.charts import (
    MatplotlibChartRenderer,
    capture_charts,
    product_chart_spec,
    team_chart_spec,
)
from expenses.services.exceptions import ChartCaptureError, ReportExportError
from tests.utils import make_record


def _summary():
    return summarize(
        [
            make_record(1, [("Arroz", "2", "5.00")], team_name="COZINHA"),
            make_record(2, [("Papel A4", "1", "3.00")], team_name="SECRETARIA"),
        ]
    )


def test_chart_specs_follow_summary_order():
    summary = _summary()

    team = team_chart_spec(summary)
    product = product_chart_spec(summary)

    assert team.kind == "donut"
    assert team.labels == ("COZINHA", "SECRETARIA")
    assert team.values == (10.0, 3.0)
    assert product.kind == "barh"
    assert product.labels == ("Arroz", "Papel A4")


def test_matplotlib_renderer_produces_png():
    renderer = MatplotlibChartRenderer()
    summary = _summary()

    donut = renderer.render(team_chart_spec(summary), 480, 320)
    bars = renderer.render(product_chart_spec(summary), 480, 320)
    empty = renderer.render(team_chart_spec(summarize([])), 480, 320)

    for image in (donut, bars, empty):
        assert image.startswith(b"\x89PNG")


def test_renderer_failure_becomes_capture_error():
    class ExplodingRenderer:
        def render(self, chart, width, height):
            raise RuntimeError("canvas lost")

    with pytest.raises(ChartCaptureError) as info:
        capture_charts(_summary(), 640, 480, ExplodingRenderer())

    assert isinstance(info.value, ReportExportError)
    assert isinstance(info.value.__cause__, RuntimeError)


def test_empty_image_is_rejected():
    class BlankRenderer:
        def render(self, chart, width, height):
            return b""

    with pytest.raises(ChartCaptureError):
        capture_charts(_summary(), 640, 480, BlankRenderer())


@pytest.mark.parametrize("width, height", [(0, 0), (-1, 300), (640, None)])
def test_unusable_size_is_rejected(width, height):
    with pytest.raises(ChartCaptureError):
        capture_charts(_summary(), width, height)
