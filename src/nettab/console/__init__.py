"""Terminal views over request records."""

from .headless import HeadlessPrinter
from .live_view import LiveRequestView
from .render import build_details_panel, build_list_panel, build_request_table, headless_line

__all__ = [
    "HeadlessPrinter",
    "LiveRequestView",
    "build_details_panel",
    "build_list_panel",
    "build_request_table",
    "headless_line",
]
