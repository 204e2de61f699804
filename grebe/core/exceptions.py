#!/usr/bin/env python3
"""Errors raised while trimming.

Discarding a read is never an error; these are reserved for input that cannot be
processed safely and for invalid settings.
"""

from __future__ import annotations


class GrebeError(Exception):
    """Base class for all grebe errors."""


class FormatError(GrebeError, ValueError):
    """A FASTQ stream is malformed.

    Always fatal for the stream it occurs on: skipping a record would
    desynchronize the mates.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        record_number: int | None = None,
        line_number: int | None = None,
    ) -> None:
        self.source = source
        self.record_number = record_number
        self.line_number = line_number
        location = []
        if source:
            location.append(source)
        if record_number is not None:
            location.append(f"record {record_number}")
        if line_number is not None:
            location.append(f"line {line_number}")
        prefix = f"{', '.join(location)}: " if location else ""
        super().__init__(f"{prefix}{message}")


class PairMismatchError(GrebeError):
    """The two mate files hold a different number of records."""


class ConfigError(GrebeError, ValueError):
    """Invalid settings, detected before any record is processed."""
