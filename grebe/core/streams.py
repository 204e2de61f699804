#!/usr/bin/env python3
"""Opening FASTQ inputs and outputs, transparently handling gzip.

Inputs are detected as gzip by their magic bytes rather than by extension;
outputs are compressed when the path ends in .gz or .gzip.
"""

from __future__ import annotations

import gzip
import sys
from pathlib import Path
from typing import BinaryIO

from grebe.core.constants import GZIP_MAGIC
from grebe.core.logging_config import get_logger

logger = get_logger(__name__)

STDIO_PATH = "-"
GZIP_SUFFIXES = (".gz", ".gzip")


def is_gzip_file(path: Path) -> bool:
    """Check the first two bytes of a file for the gzip magic number."""
    with path.open("rb") as f:
        return f.read(2) == GZIP_MAGIC


def open_input(path: str | Path) -> BinaryIO:
    """Open a FASTQ input for binary reading.

    Args:
        path: File path, or "-" for standard input.

    Returns:
        Binary stream; gzip members are decompressed on the fly.
    """
    if str(path) == STDIO_PATH:
        stdin = sys.stdin.buffer
        if stdin.peek(2)[:2] == GZIP_MAGIC:  # type: ignore[attr-defined]
            logger.debug("parsing standard input as gzip")
            return gzip.GzipFile(fileobj=stdin, mode="rb")  # type: ignore[return-value]
        return stdin

    path = Path(path)
    if is_gzip_file(path):
        logger.debug(f"parsing {path} as gzip")
        return gzip.open(path, "rb")  # type: ignore[return-value]
    return path.open("rb")


def open_output(path: str | Path, compresslevel: int = 6) -> BinaryIO:
    """Open a FASTQ output for binary writing.

    Args:
        path: File path, or "-" for standard output.
        compresslevel: gzip level used for .gz/.gzip outputs.

    Returns:
        Binary stream.
    """
    if str(path) == STDIO_PATH:
        return sys.stdout.buffer

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in GZIP_SUFFIXES:
        logger.debug(f"writing {path} as gzip")
        return gzip.open(path, "wb", compresslevel=compresslevel)  # type: ignore[return-value]
    return path.open("wb")


def is_nonempty_file(path: str | Path) -> bool:
    """True for an existing regular file with content; stdout never counts."""
    if str(path) == STDIO_PATH:
        return False
    path = Path(path)
    return path.is_file() and path.stat().st_size > 0
