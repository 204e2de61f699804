#!/usr/bin/env python3
"""Constants and type aliases used throughout the grebe package."""

from typing import TypeAlias

# =============================================================================
# Type Aliases
# =============================================================================
Sequence: TypeAlias = str
QualityScores: TypeAlias = tuple[int, ...]

# =============================================================================
# Phred Score Constants
# =============================================================================
PHRED33_OFFSET = 33
"""ASCII offset for Sanger / Illumina 1.8+ quality strings."""

PHRED64_OFFSET = 64
"""ASCII offset for legacy Illumina 1.3-1.7 quality strings ('@' is score 0)."""

MAX_QUALITY_CHAR = 126
"""Highest printable ASCII character ('~') allowed in a quality string."""

# =============================================================================
# Alphabets
# =============================================================================
READ_ALPHABET = frozenset("ACGTN")
"""Symbols accepted in read sequences (compared upper-cased)."""

IUPAC_CODES: dict[str, frozenset[str]] = {
    "A": frozenset("A"),
    "C": frozenset("C"),
    "G": frozenset("G"),
    "T": frozenset("T"),
    "U": frozenset("T"),
    "W": frozenset("AT"),
    "S": frozenset("CG"),
    "M": frozenset("AC"),
    "K": frozenset("GT"),
    "R": frozenset("AG"),
    "Y": frozenset("CT"),
    "B": frozenset("CGT"),
    "D": frozenset("AGT"),
    "H": frozenset("ACT"),
    "V": frozenset("ACG"),
    "N": frozenset("ACGTN"),
}
"""Read bases matched by each adapter symbol. An adapter N matches anything, including N."""

# =============================================================================
# Adapter Presets
# =============================================================================
ADAPTER_PRESETS: dict[str, str] = {
    "illumina": "AGATCGGAAGAGC",
    "nextera": "CTGTCTCTTATA",
    "small-rna": "TGGAATTCTCGG",
}
"""Common 3' adapter sequences, selectable by name on the command line."""

# =============================================================================
# Trimming Defaults
# =============================================================================
DEFAULT_MAX_MISMATCHES = 2
"""Upper bound on mismatches in an adapter overlap."""

DEFAULT_ERROR_RATE = 0.1
"""Mismatches allowed per overlapping base; scales the budget down for short overlaps."""

DEFAULT_MIN_OVERLAP = 5
"""Minimum number of adapter bases that must overlap the read to count as a hit."""

DEFAULT_QUALITY_THRESHOLD = 20
"""Windowed mean Phred score required to keep a stretch of bases."""

DEFAULT_WINDOW = 4
"""Sliding window width used by the quality trimmer."""

DEFAULT_MIN_LENGTH = 20
"""Reads shorter than this after trimming are discarded."""

DEFAULT_BATCH_SIZE = 2000
"""Number of read pairs handed to a worker at once when running with several threads."""

# =============================================================================
# File Suffixes
# =============================================================================
TRIMMED_R1_SUFFIX = "_R1_trimmed.fastq.gz"
"""Suffix for the trimmed forward reads."""

TRIMMED_R2_SUFFIX = "_R2_trimmed.fastq.gz"
"""Suffix for the trimmed reverse reads."""

TRIMMED_SE_SUFFIX = "_trimmed.fastq.gz"
"""Suffix for trimmed single-end reads."""

UNPAIRED_SUFFIX = "_unpaired_trimmed.fastq.gz"
"""Suffix for mates whose partner was discarded (singleton policy only)."""

SUMMARY_SUFFIX = "_trim_summary.tsv"
"""Suffix for the run summary."""

GZIP_MAGIC = b"\x1f\x8b"
"""Leading bytes of a gzip member."""

ASCII_ART = r"""
  ____  ____   _____  ____   _____
 / ___||  _ \ | ____|| __ ) | ____|
| |  _ | |_) ||  _|  |  _ \ |  _|
| |_| ||  _ < | |___ | |_) || |___
 \____||_| \_\|_____||____/ |_____|
"""
"""ASCII art for the CLI banner."""
