#!/usr/bin/env python3
"""Streaming FASTQ reader and writer.

Both sides work on binary streams; decompression and compression happen in
``grebe.core.streams`` before a stream reaches this module.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import BinaryIO

from grebe.core.exceptions import FormatError
from grebe.core.records import FastqRecord, PhredEncoding

# Header and sequence bytes are decoded as latin-1 so any byte round-trips unchanged
_TEXT_ENCODING = "latin-1"
_VALID_BASES = b"ACGTNacgtn"


def _strip_newline(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


class FastqReader:
    """Lazily parse four-line FASTQ records from a binary stream.

    Iterating yields ``FastqRecord`` objects until the stream is exhausted. The
    reader is single-pass: restart it by reopening the underlying file.

    Args:
        handle: Binary stream positioned at the start of a record.
        encoding: Quality encoding used to decode the quality lines.
        source: Name used in error messages (usually the file path).
    """

    def __init__(self, handle: BinaryIO, encoding: PhredEncoding | None = None, source: str = "<stream>") -> None:
        self.handle = handle
        self.encoding = encoding or PhredEncoding()
        self.source = source
        self.records_read = 0
        self.line_number = 0

    def __iter__(self) -> Iterator[FastqRecord]:
        return self._records()

    def _readline(self) -> bytes:
        line = self.handle.readline()
        if line:
            self.line_number += 1
        return line

    def _error(self, message: str, line_number: int | None = None) -> FormatError:
        return FormatError(
            message,
            source=self.source,
            record_number=self.records_read + 1,
            line_number=self.line_number if line_number is None else line_number,
        )

    def _records(self) -> Iterator[FastqRecord]:
        while True:
            header = self._readline()
            # Blank lines between records and at the end of the file are tolerated
            while header and not header.strip():
                header = self._readline()
            if not header:
                return

            header_line = self.line_number
            if not header.startswith(b"@"):
                raise self._error(f"expected a header line starting with '@', got {header[:40]!r}")

            sequence = self._readline()
            separator = self._readline()
            quality = self._readline()
            if not quality:
                # An empty read at the end of the stream may lack its quality line terminator
                if not (separator and sequence and not _strip_newline(sequence)):
                    raise self._error("stream ended in the middle of a record", line_number=header_line)

            if not separator.startswith(b"+"):
                raise self._error(f"expected a separator line starting with '+', got {separator[:40]!r}")

            sequence = _strip_newline(sequence)
            quality = _strip_newline(quality)
            if len(sequence) != len(quality):
                raise self._error(
                    f"sequence length ({len(sequence)}) and quality length ({len(quality)}) differ"
                )

            invalid = sequence.translate(None, _VALID_BASES)
            if invalid:
                raise self._error(f"invalid nucleotide symbol {chr(invalid[0])!r} in sequence")

            try:
                qualities = self.encoding.decode(quality)
            except ValueError as e:
                raise self._error(str(e)) from e

            self.records_read += 1
            yield FastqRecord(
                name=_strip_newline(header)[1:].decode(_TEXT_ENCODING),
                sequence=sequence.decode(_TEXT_ENCODING),
                qualities=qualities,
                comment=_strip_newline(separator)[1:].decode(_TEXT_ENCODING),
            )


class FastqWriter:
    """Serialize records back to four-line FASTQ on a binary stream.

    The writer does not own the stream; closing it is left to the caller (the
    pipeline driver holds every handle in one ``ExitStack``).
    """

    def __init__(self, handle: BinaryIO, encoding: PhredEncoding | None = None) -> None:
        self.handle = handle
        self.encoding = encoding or PhredEncoding()
        self.records_written = 0

    def write(self, record: FastqRecord) -> None:
        text = f"@{record.name}\n{record.sequence}\n+{record.comment}\n{self.encoding.encode(record.qualities)}\n"
        self.handle.write(text.encode(_TEXT_ENCODING))
        self.records_written += 1

    def write_all(self, records) -> None:
        for record in records:
            self.write(record)

    def flush(self) -> None:
        self.handle.flush()

    def __enter__(self) -> FastqWriter:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.flush()


def read_fastq(handle: BinaryIO, encoding: PhredEncoding | None = None, source: str = "<stream>") -> Iterator[FastqRecord]:
    """Read one FASTQ record at a time using a generator.

    Args:
        handle: Open binary handle for reading FASTQ records.
        encoding: Quality encoding, Phred+33 by default.
        source: Name used in error messages.

    Yields:
        ``FastqRecord`` for each record in the stream.
    """
    yield from FastqReader(handle, encoding, source)
