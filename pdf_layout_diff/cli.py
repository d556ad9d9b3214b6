import typer
import shutil
from pathlib import Path
from typing import Optional

from .batch import BatchComparator, compare_pair_job, result_line
from .difference_log import configure_logging
from .models import CompareConfig, ComparisonMode, DocumentPair

app = typer.Typer(add_completion=False, help="Compare PDF documents by layout and appearance.")


def _build_config(
    compare: str,
    visualise: Optional[Path],
    log: Optional[Path],
    prefix: Optional[str],
    workers: int,
) -> CompareConfig:
    try:
        mode = ComparisonMode.parse(compare)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--compare")
    return CompareConfig(
        mode=mode,
        workers=workers,
        output_dir=str(visualise) if visualise else None,
        log_dir=str(log) if log else None,
        prefix=prefix,
    )


def _prepare_output(visualise: Optional[Path]) -> None:
    # difference images of earlier runs would mix with this run's
    if visualise is None:
        return
    if visualise.exists():
        shutil.rmtree(visualise)
    visualise.mkdir(parents=True)


@app.command()
def compare(
    dir_a: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, help="Directory with the old PDFs"),
    dir_b: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, help="Directory with the new PDFs"),
    visualise: Optional[Path] = typer.Option(None, "--visualise", help="Write difference images into this directory"),
    log: Optional[Path] = typer.Option(None, "--log", help="Write per-document difference logs into this directory"),
    compare_type: str = typer.Option("SIMPLE", "--compare", help="SIMPLE, STRUCTURAL or VISUAL (or 1, 2, 3)"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Only compare PDFs whose name starts with this"),
    workers: int = typer.Option(0, "--workers", help="Parallel jobs (0 = PDF_LAYOUT_DIFF_WORKERS or 4)"),
    output: bool = typer.Option(False, "--output", help="Log progress to the console"),
):
    """
    Compare all PDFs of DIR_A with the same-named PDFs of DIR_B.

    Exits with code 1 if any pair differs.

    Example:
        pdf-layout-diff compare old/ new/ --visualise diffs/ --compare STRUCTURAL
    """
    config = _build_config(compare_type, visualise, log, prefix, workers)
    configure_logging(config.log_dir, console=output)
    _prepare_output(visualise)

    comparator = BatchComparator(config, console=output)
    found = comparator.run(str(dir_a), str(dir_b))

    for pair in comparator.results:
        typer.echo(result_line(pair))
    if not comparator.results:
        typer.echo("No document pairs found.")
    raise typer.Exit(code=1 if found else 0)


@app.command()
def pair(
    old: Path = typer.Argument(..., exists=True, dir_okay=False, help="Old PDF"),
    new: Path = typer.Argument(..., exists=True, dir_okay=False, help="New PDF"),
    visualise: Optional[Path] = typer.Option(None, "--visualise", help="Write difference images into this directory"),
    log: Optional[Path] = typer.Option(None, "--log", help="Write the difference log into this directory"),
    compare_type: str = typer.Option("SIMPLE", "--compare", help="SIMPLE, STRUCTURAL or VISUAL (or 1, 2, 3)"),
    output: bool = typer.Option(False, "--output", help="Log progress to the console"),
):
    """
    Compare two explicit PDF files.

    Example:
        pdf-layout-diff pair invoice_v1.pdf invoice_v2.pdf --compare VISUAL --visualise diffs/
    """
    config = _build_config(compare_type, visualise, log, None, 1)
    configure_logging(config.log_dir, console=output)
    _prepare_output(visualise)

    result = compare_pair_job(DocumentPair(name=old.name, path_a=str(old), path_b=str(new)), config)
    typer.echo(result_line(result))
    if result.error:
        typer.echo(f"⚠️  {result.error}", err=True)
    raise typer.Exit(code=1 if result.different else 0)


if __name__ == "__main__":
    app()
