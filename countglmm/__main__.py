"""
Command line entry point.

    python -m countglmm [--data PATH] [--output-dir DIR] [--verbose]
"""

from pathlib import Path
from typing import Optional

import typer

from countglmm.core.exceptions import DataUnavailable
from countglmm.owls.pipeline import run_pipeline


app = typer.Typer(add_completion=False, help="Fit the Owls count GLMMs and print the report.")


@app.command()
def main(
    data: Optional[Path] = typer.Option(
        None, "--data", help="Owls CSV; defaults to the cached Rdatasets copy."),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Write report.txt and ncalls_histogram.png here."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print progress."),
) -> None:
    """Load, transform, fit every variant and print the report."""
    try:
        result = run_pipeline(data, output_dir, verbose=verbose)
    except DataUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(result.report)
    if result.failed:
        typer.echo(f"{len(result.failed)} fit(s) failed: {', '.join(result.failed)}",
                   err=True)


if __name__ == '__main__':
    app()
