#!/usr/bin/env python3
"""Adapter sequences and bounded-mismatch adapter detection.

Adapters are located by Hamming distance over the overlap between the adapter
and the read, where the overlap may be cut short by the 3' end of the read. No
gapped alignment is attempted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from operator import ne
from pathlib import Path

from grebe.core.constants import ADAPTER_PRESETS, IUPAC_CODES
from grebe.core.exceptions import ConfigError
from grebe.core.logging_config import get_logger

logger = get_logger(__name__)

_PLAIN_BASES = frozenset("ACGT")


@dataclass(frozen=True)
class Adapter:
    """A named adapter sequence over the IUPAC nucleotide alphabet."""

    name: str
    sequence: str

    def __post_init__(self) -> None:
        sequence = self.sequence.strip().upper()
        if not sequence:
            raise ConfigError(f"Adapter {self.name!r} has an empty sequence")
        invalid = sorted(set(sequence) - IUPAC_CODES.keys())
        if invalid:
            raise ConfigError(f"Adapter {self.name!r} contains invalid symbols: {''.join(invalid)}")
        object.__setattr__(self, "sequence", sequence)

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def is_plain(self) -> bool:
        """True when the adapter only holds A, C, G and T."""
        return set(self.sequence) <= _PLAIN_BASES


def hamming_distance(a: str, b: str) -> int:
    """Hamming distance over the shorter of two strings."""
    return sum(map(ne, a, b))


def resolve_adapters(names: Iterable[str]) -> list[Adapter]:
    """Turn preset names or literal sequences into adapters.

    Args:
        names: Items such as "illumina", "nextera" or "AGATCGGAAGAGC".

    Returns:
        Adapters in the order given, without duplicates.
    """
    adapters: list[Adapter] = []
    seen: set[str] = set()
    for item in names:
        key = item.strip().lower()
        if key in ADAPTER_PRESETS:
            adapter = Adapter(name=key, sequence=ADAPTER_PRESETS[key])
        else:
            adapter = Adapter(name=f"adapter_{len(adapters) + 1}", sequence=item)
        if adapter.sequence in seen:
            continue
        seen.add(adapter.sequence)
        adapters.append(adapter)
    return adapters


def load_adapters_fasta(path: Path) -> list[Adapter]:
    """Load adapters from a FASTA file.

    The first word of each header is used as the adapter name; sequences may
    span several lines.
    """
    adapters: list[Adapter] = []
    name: str | None = None
    chunks: list[str] = []
    with Path(path).open() as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith(";"):
                continue
            if line.startswith(">"):
                if name is not None:
                    adapters.append(Adapter(name=name, sequence="".join(chunks)))
                name = line[1:].split()[0] if line[1:].strip() else f"adapter_{len(adapters) + 1}"
                chunks = []
            elif name is None:
                raise ConfigError(f"{path}: line {line_number} holds sequence before any '>' header")
            else:
                chunks.append(line)
    if name is not None:
        adapters.append(Adapter(name=name, sequence="".join(chunks)))
    if not adapters:
        raise ConfigError(f"No adapters found in {path}")
    logger.debug(f"Loaded {len(adapters)} adapters from {path}")
    return adapters


@dataclass(frozen=True)
class AdapterMatch:
    """Where an adapter was found in a read."""

    position: int
    adapter: Adapter
    overlap: int
    mismatches: int


@dataclass
class AdapterMatcher:
    """Find the leftmost adapter occurrence in a read, allowing mismatches.

    For every start position from the 5' end, each adapter is laid over the
    read; the overlap may be shorter than the adapter when it runs off the 3'
    end, but never shorter than ``min_overlap``. A position is accepted when
    the mismatches over the overlap do not exceed the budget for that overlap
    length: ``max_mismatches``, lowered to ``floor(overlap * error_rate)`` when
    an error rate is set.

    Raises:
        ConfigError: If the parameters can never give a meaningful match.
    """

    adapters: list[Adapter]
    max_mismatches: int = 2
    min_overlap: int = 5
    error_rate: float | None = 0.1
    _compiled: list[tuple[Adapter, str, tuple[frozenset[str], ...] | None]] = field(
        default_factory=list, init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.max_mismatches < 0:
            raise ConfigError(f"max_mismatches must be >= 0, got {self.max_mismatches}")
        if self.min_overlap < 1:
            raise ConfigError(f"min_overlap must be >= 1, got {self.min_overlap}")
        if self.error_rate is not None and not 0.0 <= self.error_rate < 1.0:
            raise ConfigError(f"error_rate must lie in [0, 1), got {self.error_rate}")
        if self.adapters:
            shortest = min(len(a) for a in self.adapters)
            longest = max(len(a) for a in self.adapters)
            if self.max_mismatches > shortest:
                raise ConfigError(
                    f"max_mismatches ({self.max_mismatches}) is larger than the shortest adapter ({shortest} bases)"
                )
            if self.min_overlap > longest:
                raise ConfigError(
                    f"min_overlap ({self.min_overlap}) is larger than the longest adapter ({longest} bases)"
                )
            if self.allowed_mismatches(self.min_overlap) >= self.min_overlap:
                raise ConfigError(
                    f"a budget of {self.allowed_mismatches(self.min_overlap)} mismatches would accept "
                    f"any {self.min_overlap}-base overlap; raise min_overlap or lower max_mismatches"
                )
        # IUPAC adapters are compared base by base against sets, plain ones with map(ne)
        self._compiled = [
            (a, a.sequence, None if a.is_plain else tuple(IUPAC_CODES[c] for c in a.sequence)) for a in self.adapters
        ]

    def allowed_mismatches(self, overlap: int) -> int:
        """Mismatch budget for an overlap of the given length."""
        if self.error_rate is None:
            return self.max_mismatches
        return min(self.max_mismatches, int(overlap * self.error_rate))

    def match(self, sequence: str) -> AdapterMatch | None:
        """Return the leftmost adapter hit in ``sequence``, or None."""
        if not self._compiled:
            return None
        read = sequence.upper()
        read_length = len(read)
        min_overlap = self.min_overlap
        for position in range(read_length - min_overlap + 1):
            remaining = read_length - position
            for adapter, adapter_seq, codes in self._compiled:
                overlap = min(len(adapter_seq), remaining)
                if overlap < min_overlap:
                    continue
                budget = self.allowed_mismatches(overlap)
                if codes is None:
                    mismatches = sum(map(ne, adapter_seq[:overlap], read[position : position + overlap]))
                else:
                    mismatches = _count_iupac_mismatches(codes, read, position, overlap, budget)
                if mismatches <= budget:
                    return AdapterMatch(position=position, adapter=adapter, overlap=overlap, mismatches=mismatches)
        return None

    def find_trim_point(self, sequence: str) -> int | None:
        """Index from which the read should be cut, or None if no adapter is present."""
        hit = self.match(sequence)
        return None if hit is None else hit.position


def _count_iupac_mismatches(
    codes: tuple[frozenset[str], ...], read: str, position: int, overlap: int, budget: int
) -> int:
    """Count mismatches against an IUPAC adapter, stopping once over budget."""
    mismatches = 0
    for offset in range(overlap):
        if read[position + offset] not in codes[offset]:
            mismatches += 1
            if mismatches > budget:
                break
    return mismatches
