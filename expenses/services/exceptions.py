"""Errors raised while exporting reports."""


class ReportExportError(Exception):
    """Base class for failures that abort a report export."""


class ChartCaptureError(ReportExportError):
    """Raised when the charts cannot be rasterised for the export."""


class DocumentAssemblyError(ReportExportError):
    """Raised when the PDF document cannot be assembled."""
