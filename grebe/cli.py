#!/usr/bin/env python3
"""Command line interface for grebe using Typer."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from grebe.core.constants import (
    ADAPTER_PRESETS,
    ASCII_ART,
    DEFAULT_BATCH_SIZE,
    DEFAULT_ERROR_RATE,
    DEFAULT_MAX_MISMATCHES,
    DEFAULT_MIN_LENGTH,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_QUALITY_THRESHOLD,
    DEFAULT_WINDOW,
    PHRED33_OFFSET,
    PHRED64_OFFSET,
)
from grebe.core.exceptions import GrebeError
from grebe.core.logging_config import (
    add_file_handler,
    get_log_path,
    get_logger,
    remove_file_handler,
    setup_logging,
)
from grebe.version import __version__

app = typer.Typer(
    name="grebe",
    help="Adapter and quality trimming of paired-end Illumina FASTQ files.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Messages go to stderr so FASTQ can be streamed to stdout with "-"
console = Console(stderr=True)
logger = get_logger("cli")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold green]grebe[/bold green] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-V", help="Enable verbose output (DEBUG level)."),
    ] = False,
) -> None:
    """grebe - Clean paired-end Illumina reads while keeping mates in sync."""
    log_level = "DEBUG" if verbose else "INFO"
    setup_logging(level=log_level)  # type: ignore


@app.command()
def trim(
    read1: Annotated[Path, typer.Option("-r1", "--read1", help="Path to first FASTQ file (R1), or - for stdin.")],
    read2: Annotated[Optional[Path], typer.Option("-r2", "--read2", help="Path to second FASTQ file (R2).")] = None,
    output: Annotated[
        Optional[Path], typer.Option("-o", "--output", help="Output directory for trimmed reads and summary.")
    ] = None,
    out1: Annotated[Optional[Path], typer.Option("--out1", help="Explicit R1 output path (- for stdout).")] = None,
    out2: Annotated[Optional[Path], typer.Option("--out2", help="Explicit R2 output path.")] = None,
    unpaired: Annotated[
        Optional[Path], typer.Option("--unpaired", help="Output for mates whose partner was discarded.")
    ] = None,
    sample_name: Annotated[Optional[str], typer.Option("-s", "--sample-name", help="Sample name.")] = None,
    adapters: Annotated[
        Optional[list[str]],
        typer.Option(
            "-a",
            "--adapter",
            help=f"Adapter preset ({', '.join(ADAPTER_PRESETS)}) or sequence. Can be repeated.",
        ),
    ] = None,
    adapter_fasta: Annotated[
        Optional[Path], typer.Option("--adapter-fasta", help="FASTA file with additional adapters.")
    ] = None,
    max_mismatches: Annotated[
        int, typer.Option("-k", "--max-mismatches", help="Maximum mismatches in an adapter overlap.")
    ] = DEFAULT_MAX_MISMATCHES,
    error_rate: Annotated[
        float, typer.Option("-e", "--error-rate", help="Mismatches allowed per overlapping base (0 disables).")
    ] = DEFAULT_ERROR_RATE,
    min_overlap: Annotated[
        int, typer.Option("--min-overlap", help="Minimum adapter overlap at the 3' end.")
    ] = DEFAULT_MIN_OVERLAP,
    quality: Annotated[
        int, typer.Option("-q", "--quality", help="Minimum windowed mean Phred quality.")
    ] = DEFAULT_QUALITY_THRESHOLD,
    window: Annotated[int, typer.Option("-w", "--window", help="Quality window width.")] = DEFAULT_WINDOW,
    quality_strategy: Annotated[
        str, typer.Option("--quality-strategy", help="Quality trimming strategy: window or sliding.")
    ] = "window",
    trim_five_prime: Annotated[
        bool, typer.Option("--trim-5prime/--no-trim-5prime", help="Also trim low quality bases at the 5' end.")
    ] = False,
    min_length: Annotated[
        int, typer.Option("-m", "--min-length", help="Discard reads shorter than this after trimming.")
    ] = DEFAULT_MIN_LENGTH,
    min_mean_quality: Annotated[
        Optional[float], typer.Option("--min-mean-quality", help="Discard reads with a lower mean quality.")
    ] = None,
    phred64: Annotated[bool, typer.Option("--phred64", help="Qualities use the legacy Phred+64 encoding.")] = False,
    pair_policy: Annotated[
        str, typer.Option("--pair-policy", help="strict (drop both mates) or singletons (keep the survivor).")
    ] = "strict",
    umi_length: Annotated[
        int, typer.Option("-u", "--umi-length", help="Move this many leading R1 bases into the read names.")
    ] = 0,
    start_at: Annotated[int, typer.Option("--start-at", help="Remove this many bases from the 5' end.")] = 0,
    threads: Annotated[int, typer.Option("-t", "--threads", help="Number of worker processes.")] = 1,
    batch_size: Annotated[
        int, typer.Option("--batch-size", help="Read pairs per batch handed to a worker.")
    ] = DEFAULT_BATCH_SIZE,
    summary: Annotated[
        Optional[Path], typer.Option("--summary", help="Summary file (.json for JSON, TSV otherwise).")
    ] = None,
    force: Annotated[bool, typer.Option("-f", "--force", help="Overwrite existing files.")] = False,
    progress: Annotated[bool, typer.Option("--progress/--no-progress", help="Show a progress spinner.")] = False,
) -> None:
    """Trim adapters and low quality bases from single or paired-end FASTQ files."""
    from grebe.models.models import TrimConfig, TrimRunConfig
    from grebe.pipeline import run_trimming

    try:
        trim_config = TrimConfig.build(
            adapters=adapters or ["illumina"],
            adapter_fasta=adapter_fasta,
            max_mismatches=max_mismatches,
            error_rate=error_rate or None,
            min_overlap=min_overlap,
            quality_threshold=quality,
            window=window,
            quality_strategy=quality_strategy,
            trim_five_prime=trim_five_prime,
            min_length=min_length,
            min_mean_quality=min_mean_quality,
            phred_offset=PHRED64_OFFSET if phred64 else PHRED33_OFFSET,
            pair_policy=pair_policy,
            umi_length=umi_length,
            start_at=start_at,
        )
        config = TrimRunConfig.build(
            read1=read1,
            read2=read2,
            output_path=output,
            sample_name=sample_name,
            out1=out1,
            out2=out2,
            unpaired=unpaired,
            summary=summary,
            force=force,
            threads=threads,
            batch_size=batch_size,
            trim=trim_config,
        )

        # Set up file logging
        if config.output_path is not None:
            log_path = get_log_path(config.output_path)
            add_file_handler(log_path)
            logger.info(f"Logging to {log_path}")

        console.print(Text(ASCII_ART, style="bold green"))
        console.print(f"  Version: {__version__}")
        console.print(f"  Mode: {config.mode}-end")
        console.print(f"  Read1: {config.read1}")
        if config.read2:
            console.print(f"  Read2: {config.read2}")
        console.print(f"  Adapters: {', '.join(a.name for a in trim_config.load_adapters())}")
        console.print(f"  Threads: {config.threads}")
        console.print()

        result = run_trimming(config, show_progress=progress)
    except GrebeError as e:
        logger.debug(f"Trimming failed: {e!r}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    else:
        console.print(_summary_table(result.as_dict()))
        logger.info("Trimming complete!")
    finally:
        remove_file_handler()


def _summary_table(data: dict[str, object]) -> Table:
    table = Table(title="Trimming summary", show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in data.items():
        if value == "" or key == "version":
            continue
        table.add_row(key.replace("_", " "), f"{value:,}" if isinstance(value, int) else str(value))
    return table


@app.command("adapters")
def list_adapters() -> None:
    """List the built-in adapter presets."""
    table = Table(title="Adapter presets", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Sequence")
    for name, sequence in ADAPTER_PRESETS.items():
        table.add_row(name, sequence)
    Console().print(table)


def main_cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main_cli()
