"""
Pehead Console Interface
=========================

One themed :class:`rich.console.Console` shared by the command line and the
header renderers.  Status lines carry a fixed marker per severity, header
blocks are introduced by a rule, and field listings are bordered tables.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

_THEME = Theme(
    {
        "pehead.rule": "bold bright_magenta",
        "pehead.success": "bold green",
        "pehead.warning": "bold yellow",
        "pehead.error": "bold red",
        "pehead.info": "bold bright_blue",
        "pehead.header": "bold bright_magenta",
        "pehead.border": "bright_cyan",
    }
)

# severity -> (marker, label)
_MARKERS: dict[str, tuple[str, str]] = {
    "success": ("✔", "SUCCESS"),
    "warning": ("⚠", "WARNING"),
    "error": ("✘", "ERROR"),
    "info": ("ℹ", "INFO"),
}


def _plain(cell: Any) -> Text:
    return cell if isinstance(cell, Text) else Text(str(cell))


class PeheadConsole:
    """Console wrapper used for every piece of pehead terminal output.

    Usage::

        con = PeheadConsole()
        con.section("Section Table")
        con.table("", ["Name", "VAddr"], [(".text", "0x1000")])
        con.success("Decoded 3 sections")

    Args:
        quiet:  Discard everything printed.
        record: Keep a copy of the output for :meth:`export_text`.
        width:  Fixed width in columns; detected from the terminal if ``None``.
    """

    def __init__(
        self,
        *,
        quiet: bool = False,
        record: bool = False,
        width: int | None = None,
    ) -> None:
        self._console = Console(
            theme=_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
            width=width,
        )

    @property
    def rich(self) -> Console:
        return self._console

    # ------------------------------------------------------------------ #
    #  Status lines
    # ------------------------------------------------------------------ #

    def _status_line(self, severity: str, message: str) -> None:
        marker, label = _MARKERS[severity]
        style = f"pehead.{severity}"
        self._console.print(f"[{style}]\\[{marker}] {label}:[/{style}] {escape(message)}")

    def success(self, message: str) -> None:
        self._status_line("success", message)

    def warning(self, message: str) -> None:
        self._status_line("warning", message)

    def error(self, message: str) -> None:
        self._status_line("error", message)

    def info(self, message: str) -> None:
        self._status_line("info", message)

    # ------------------------------------------------------------------ #
    #  Blocks
    # ------------------------------------------------------------------ #

    def section(self, title: str) -> None:
        """Print a full-width rule titled *title*, then a blank line."""
        self._console.rule(f"  {title}  ", style="pehead.rule")
        self._console.print()

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        caption: str | None = None,
        styles: Sequence[str] | None = None,
    ) -> None:
        """Print *rows* under *columns*.

        Cells are rendered as plain text, never as markup, so values read
        from an image (section names) print verbatim.  A cell that is
        already a :class:`rich.text.Text` is used as is.

        *styles* gives a Rich style per column and may be shorter than
        *columns*.
        """
        column_styles = list(styles or ())
        column_styles += [""] * (len(columns) - len(column_styles))

        tbl = Table(
            title=title or None,
            caption=caption,
            border_style="pehead.border",
            header_style="pehead.header",
            padding=(0, 1),
        )
        for name, style in zip(columns, column_styles):
            tbl.add_column(name, style=style)
        for row in rows:
            tbl.add_row(*(_plain(cell) for cell in row))
        self._console.print(tbl)

    @contextmanager
    def status(self, message: str) -> Generator[Any, None, None]:
        """Show a spinner next to *message* while the block runs."""
        with self._console.status(
            f"[pehead.info]{escape(message)}[/pehead.info]",
            spinner="dots",
        ) as spinner:
            yield spinner

    # ------------------------------------------------------------------ #
    #  Passthrough
    # ------------------------------------------------------------------ #

    def print(self, *args: Any, **kwargs: Any) -> None:
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        if count > 0:
            self._console.line(count)

    def export_text(self) -> str:
        """Plain text of everything printed so far (``record=True`` only)."""
        return self._console.export_text()
