"""Rich display helpers for terminal output."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from statadta.io.layout import RecordLayout, descriptor_size
from statadta.models.field import DtaField
from statadta.models.header import HEADER_SIZE


def display_layout(fields: list[DtaField], layout: RecordLayout, console: Console) -> None:
    """Print the variable table and the size of each file section.

    Columns: #, Name, Type, Width, Offset, Format, Label

    Args:
        fields: Fields in declared order.
        layout: Record layout computed from ``fields``.
        console: Rich Console for output.
    """
    table = Table(title="Record Layout", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold cyan", no_wrap=True)
    table.add_column("Type", style="green")
    table.add_column("Width", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Format", style="yellow")
    table.add_column("Label")

    for i, (f, offset, width) in enumerate(zip(fields, layout.offsets, layout.widths), start=1):
        table.add_row(str(i), f.name, f.type_name, str(width), str(offset), f.display_format, f.label)

    console.print(table)
    console.print(
        f"Header {HEADER_SIZE} bytes, descriptors {descriptor_size(len(fields))} bytes, "
        f"record size [bold]{layout.record_size}[/bold] bytes"
    )
