#!/usr/bin/env python3
"""In-memory representation of sequencing reads, mate pairs and trim windows."""

from __future__ import annotations

from dataclasses import dataclass, replace

from grebe.core.constants import MAX_QUALITY_CHAR, PHRED33_OFFSET, QualityScores


@dataclass(frozen=True)
class PhredEncoding:
    """ASCII-offset Phred quality encoding.

    The same instance is handed to the reader and the writer of a run so that
    qualities are re-encoded with the offset they were decoded with.
    """

    offset: int = PHRED33_OFFSET

    def __post_init__(self) -> None:
        if not 32 < self.offset < MAX_QUALITY_CHAR:
            raise ValueError(f"Phred offset must be a printable ASCII code, got {self.offset}")

    @property
    def max_score(self) -> int:
        """Highest score representable with this offset."""
        return MAX_QUALITY_CHAR - self.offset

    def decode(self, encoded: bytes) -> QualityScores:
        """Convert an encoded quality line to integer scores.

        Raises:
            ValueError: If a character falls outside [offset, 126].
        """
        if encoded and (min(encoded) < self.offset or max(encoded) > MAX_QUALITY_CHAR):
            bad = next(c for c in encoded if c < self.offset or c > MAX_QUALITY_CHAR)
            raise ValueError(f"quality character {chr(bad)!r} is out of range for Phred+{self.offset}")
        offset = self.offset
        return tuple(c - offset for c in encoded)

    def encode(self, scores: QualityScores) -> str:
        """Convert integer scores back to a quality string."""
        if scores and (min(scores) < 0 or max(scores) > self.max_score):
            raise ValueError(f"quality scores must lie in [0, {self.max_score}] for Phred+{self.offset}")
        offset = self.offset
        return "".join(chr(q + offset) for q in scores)


@dataclass(frozen=True)
class TrimDecision:
    """Half-open range [start, end) of a read that is retained."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid trim window [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    @classmethod
    def keep_all(cls, length: int) -> TrimDecision:
        return cls(0, length)

    def clamp(self, length: int) -> TrimDecision:
        """Restrict the window to a read of the given length."""
        end = min(self.end, length)
        return TrimDecision(min(self.start, end), end)

    def intersect(self, other: TrimDecision) -> TrimDecision:
        """Region retained by both decisions; empty windows collapse onto their end."""
        end = min(self.end, other.end)
        return TrimDecision(min(max(self.start, other.start), end), end)


@dataclass(frozen=True)
class FastqRecord:
    """One sequencing read.

    ``name`` is the header line without the leading '@'; ``comment`` is whatever
    followed '+' on the separator line. A record of length zero is a valid,
    fully trimmed read.
    """

    name: str
    sequence: str
    qualities: QualityScores
    comment: str = ""

    def __post_init__(self) -> None:
        if len(self.sequence) != len(self.qualities):
            raise ValueError(
                f"Read {self.name}: sequence length {len(self.sequence)} "
                f"does not match quality length {len(self.qualities)}"
            )

    def __len__(self) -> int:
        return len(self.sequence)

    def trim(self, decision: TrimDecision) -> FastqRecord:
        """Return a new record holding only the retained window."""
        decision = decision.clamp(len(self))
        if decision.start == 0 and decision.end == len(self):
            return self
        return replace(
            self,
            sequence=self.sequence[decision.start : decision.end],
            qualities=self.qualities[decision.start : decision.end],
        )

    def mean_quality(self) -> float:
        if not self.qualities:
            return 0.0
        return sum(self.qualities) / len(self.qualities)

    def with_name(self, name: str) -> FastqRecord:
        return replace(self, name=name)


@dataclass(frozen=True)
class MatePair:
    """Two mates sharing a pairing index; ``reverse`` is None in single-end mode."""

    index: int
    forward: FastqRecord
    reverse: FastqRecord | None = None

    @property
    def is_paired(self) -> bool:
        return self.reverse is not None
