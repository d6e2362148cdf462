"""Rich renderables for request records."""

import json

from rich.console import Group
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from nettab.modules.store.models import (
    ERROR,
    PENDING,
    RequestRecord,
    RequestStatus,
    SizeInfo,
    TimingBreakdown,
)

METHOD_STYLES = {
    "GET": "green",
    "POST": "blue",
    "PUT": "yellow",
    "PATCH": "yellow",
    "DELETE": "red",
    "HEAD": "cyan",
    "OPTIONS": "magenta",
}

TIMING_PHASES = (
    ("DNS", "dns", "magenta"),
    ("TCP", "tcp", "yellow"),
    ("TTFB", "ttfb", "green"),
    ("Download", "download", "cyan"),
)


def status_style(status: RequestStatus) -> str:
    if status == PENDING:
        return "yellow"
    if status == ERROR:
        return "red"
    if isinstance(status, int):
        if 200 <= status < 300:
            return "green"
        if 300 <= status < 400:
            return "cyan"
        if 400 <= status < 500:
            return "yellow"
        if status >= 500:
            return "red"
    return "dim"


def method_style(method: str) -> str:
    return METHOD_STYLES.get(method.upper(), "white")


def format_status(status: RequestStatus) -> str:
    if status == PENDING:
        return "..."
    if status == ERROR:
        return "ERR"
    return str(status)


def format_duration(ms: float) -> str:
    if ms <= 0:
        return ""
    if ms < 1000:
        return f"{round(ms)}ms"
    return f"{ms / 1000:.1f}s"


def format_bytes(num: int) -> str:
    if num <= 0:
        return "0 B"
    size = float(num)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}".replace(".0 ", " ")
        size /= 1024
    return f"{size:.1f} GB".replace(".0 ", " ")


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."


def headless_line(record: RequestRecord) -> str:
    """``[network] GET /path → 200 (12ms)``."""
    status = "..." if record.status == PENDING else record.status
    line = f"[network] {record.method} {record.path} → {status}"
    if record.duration > 0:
        line += f" ({round(record.duration)}ms)"
    return line


def build_request_table(records: list[RequestRecord], selected: str | None = None, path_width: int = 60) -> Table:
    """One row per record, most recent first."""
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1), expand=True)
    table.add_column("ID", style="dim", width=8, no_wrap=True)
    table.add_column("Method", width=7, no_wrap=True)
    table.add_column("Host", style="white", no_wrap=True, max_width=30)
    table.add_column("Path", no_wrap=True, ratio=1)
    table.add_column("Status", width=6, justify="right", no_wrap=True)
    table.add_column("Time", width=8, justify="right", no_wrap=True)
    table.add_column("Size", width=9, justify="right", no_wrap=True)

    for record in records:
        size = format_bytes(record.size.transferred) if record.size else ""
        table.add_row(
            record.id[:8],
            Text(record.method, style=method_style(record.method)),
            record.host,
            truncate(record.path, path_width),
            Text(format_status(record.status), style=status_style(record.status)),
            format_duration(record.duration),
            size,
            style="reverse" if record.id == selected else None,
        )
    return table


def build_list_panel(records: list[RequestRecord], title: str = "Network", subtitle: str = "") -> Panel:
    if records:
        body = build_request_table(records)
    else:
        body = Text("Waiting for requests...", style="dim")
    return Panel(
        body,
        title=f"[bold cyan]{title}[/] [dim]({len(records)})[/]",
        subtitle=f"[dim]{subtitle}[/]" if subtitle else None,
        border_style="cyan",
        padding=(0, 1),
    )


def _headers_table(headers: dict) -> Table | Text:
    if not headers:
        return Text("(none)", style="dim")
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Value", overflow="fold")
    for name, value in headers.items():
        table.add_row(name, ", ".join(value) if isinstance(value, list) else str(value))
    return table


def format_body(body: str, max_lines: int = 40) -> Syntax | Text:
    """Pretty-print JSON bodies, show anything else as plain text."""
    if not body:
        return Text("(empty)", style="dim")
    try:
        formatted = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
    except ValueError:
        lines = body.splitlines()
        text = "\n".join(lines[:max_lines])
        if len(lines) > max_lines:
            text += f"\n... ({len(lines) - max_lines} more lines)"
        return Text(text)
    lines = formatted.splitlines()
    if len(lines) > max_lines:
        formatted = "\n".join(lines[:max_lines]) + "\n..."
    return Syntax(formatted, "json", theme="monokai", line_numbers=False, word_wrap=True)


def timing_waterfall(timing: TimingBreakdown, width: int = 40) -> Table:
    """Horizontal bar per phase, scaled to the total."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Phase", width=9)
    table.add_column("Bar", width=width, no_wrap=True)
    table.add_column("ms", justify="right")
    total = timing.total or 1.0
    offset = 0.0
    for label, attr, style in TIMING_PHASES:
        value = getattr(timing, attr)
        start = int(offset / total * width)
        length = max(int(value / total * width), 1 if value > 0 else 0)
        bar = Text(" " * start)
        bar.append("█" * min(length, width - start), style=style)
        table.add_row(label, bar, f"{value:.1f}")
        offset += value
    table.add_row(Text("Total", style="bold"), "", Text(f"{timing.total:.1f}", style="bold"))
    return table


def size_summary(size: SizeInfo) -> Text:
    compression = size.encoding.upper() if size.encoding else "none"
    text = Text()
    text.append(f"Transferred {format_bytes(size.transferred)}", style="bold")
    text.append(f"  Resource {format_bytes(size.resource)}")
    text.append(f"  Compression {compression}", style="dim")
    if size.savings:
        text.append(f"  ({size.savings}% saved)", style="green")
    return text


def build_details_panel(record: RequestRecord) -> Panel:
    """Everything captured for one record."""
    summary = Text()
    summary.append(f"{record.method} ", style=method_style(record.method))
    summary.append(record.url)
    summary.append("  ")
    summary.append(format_status(record.status), style=status_style(record.status))
    if record.duration:
        summary.append(f"  {format_duration(record.duration)}", style="dim")

    parts: list = [summary]
    if record.error:
        parts.append(Text(f"Error: {record.error}", style="red"))
    parts += [
        Text("\nRequest headers", style="bold"),
        _headers_table(record.request_headers),
        Text("\nRequest body", style="bold"),
        format_body(record.request_body),
        Text("\nResponse headers", style="bold"),
        _headers_table(record.response_headers),
        Text("\nResponse body", style="bold"),
        format_body(record.response_body),
    ]
    if record.timing is not None:
        parts += [Text("\nTiming", style="bold"), timing_waterfall(record.timing)]
    if record.size is not None:
        parts += [Text("\nSize", style="bold"), size_summary(record.size)]

    return Panel(
        Group(*parts),
        title=f"[bold cyan]{record.id}[/]",
        border_style=status_style(record.status),
        padding=(0, 1),
    )
