"""statadta CLI application entry point.

Converts CSV files to Stata format 113 datasets and shows the record
layout a CSV would be written with.

Usage:
    statadta convert <data.csv> <out.dta> [--label col=Label ...]
    statadta layout <data.csv>
    statadta version
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

app = typer.Typer(
    name="statadta",
    help="Write Stata format 113 (.dta) files from tabular data.",
    no_args_is_help=True,
)

console = Console()


def _parse_labels(items: list[str] | None) -> dict[str, str]:
    labels: dict[str, str] = {}
    for item in items or []:
        col, sep, label = item.partition("=")
        if not sep or not col.strip():
            console.print(f"[bold red]Error:[/bold red] Label must look like col=Label, got '{item}'")
            raise typer.Exit(code=1)
        labels[col.strip()] = label.strip()
    return labels


def _read_csv(path: Path):
    import pandas as pd

    if not path.is_file():
        console.print(f"[bold red]Error:[/bold red] File not found: {path}")
        raise typer.Exit(code=1)
    try:
        return pd.read_csv(path)
    except Exception as e:
        console.print(f"[bold red]Error reading CSV:[/bold red] {e}")
        raise typer.Exit(code=1) from e


@app.command()
def version() -> None:
    """Show the current version."""
    from statadta import __version__

    console.print(f"statadta {__version__}")


@app.command()
def convert(
    csv_path: Annotated[
        Path,
        typer.Argument(help="CSV file with a header row"),
    ],
    output: Annotated[
        Path,
        typer.Argument(help="Destination .dta file (created or truncated)"),
    ],
    label: Annotated[
        list[str] | None,
        typer.Option("--label", "-l", help="Variable label as col=Label; repeatable"),
    ] = None,
    data_label: Annotated[
        str | None,
        typer.Option("--data-label", help="Dataset label stored in the header"),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Fail instead of truncating names, labels and values"),
    ] = False,
) -> None:
    """Convert a CSV file to a Stata 113 dataset."""
    from statadta.config import WriterConfig
    from statadta.errors import DtaError
    from statadta.io.frame import write_dataframe

    labels = _parse_labels(label)
    df = _read_csv(csv_path)

    try:
        dta = write_dataframe(df, output, labels, data_label, config=WriterConfig(strict=strict))
    except (DtaError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print(
        f"[green]Wrote {output}[/green]: {dta.num_vars} variables x {dta.num_obs} observations "
        f"({dta.record_size} bytes per record)"
    )


@app.command()
def layout(
    csv_path: Annotated[
        Path,
        typer.Argument(help="CSV file with a header row"),
    ],
) -> None:
    """Show the variables, types and record offsets a CSV would be written with."""
    from statadta.cli.display import display_layout
    from statadta.errors import DtaError
    from statadta.io.frame import fields_from_dataframe
    from statadta.io.layout import compute_layout

    df = _read_csv(csv_path)
    try:
        fields = fields_from_dataframe(df)
        record_layout = compute_layout(fields)
    except DtaError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    display_layout(fields, record_layout, console)
