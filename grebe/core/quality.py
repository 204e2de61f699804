#!/usr/bin/env python3
"""Quality trimming on per-base Phred scores.

Both strategies keep a region in which every window of ``window`` bases has a
mean quality of at least the threshold; they differ in where the cut falls:

* ``window`` (default): keep everything up to the end of the last passing
  window before the first failing one. The bases of the failing window that
  also belong to the preceding passing window are retained, so a low base is
  tolerated as long as every window covering the kept region still passes.
* ``sliding``: cut at the start of the first failing window.

Either strategy can also clip low-quality windows from the 5' end, in which
case the scan for failing windows starts at the first passing window.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

from grebe.core.exceptions import ConfigError
from grebe.core.records import TrimDecision

QualityStrategy = Literal["window", "sliding"]


@dataclass(frozen=True)
class QualityTrimmer:
    """Compute the retained window of a read from its quality scores.

    Args:
        threshold: Minimum windowed mean quality (q_min).
        window: Window width; windows shrink to the read length for short reads.
        strategy: "window" (end of the last passing window) or "sliding"
            (start of the first failing window).
        trim_five_prime: Also drop low-quality windows at the 5' end.
    """

    threshold: int = 20
    window: int = 4
    strategy: QualityStrategy = "window"
    trim_five_prime: bool = False

    def __post_init__(self) -> None:
        if self.window < 1:
            raise ConfigError(f"Quality window must be at least 1, got {self.window}")
        if self.threshold < 0:
            raise ConfigError(f"Quality threshold must be >= 0, got {self.threshold}")
        if self.strategy not in ("window", "sliding"):
            raise ConfigError(f"Unknown quality trimming strategy {self.strategy!r}")

    def decide(self, qualities: Sequence[int]) -> TrimDecision:
        """Return the half-open region of the read to keep."""
        length = len(qualities)
        if length == 0:
            return TrimDecision(0, 0)
        width = min(self.window, length)
        # A window passes when sum >= threshold * width, avoiding float means
        limit = self.threshold * width

        start = 0
        if self.trim_five_prime:
            start = _first_passing(qualities, width, limit)
            if start is None:
                return TrimDecision(0, 0)

        failure = _first_failure(qualities, width, limit, start)
        if failure is None:
            end = length
        elif self.strategy == "window" and failure > start:
            end = failure + width - 1
        else:
            end = failure

        if end <= start:
            return TrimDecision(0, 0)
        return TrimDecision(start, end)


def _window_sums(qualities: Sequence[int], width: int, first: int = 0) -> Iterator[tuple[int, int]]:
    """Yield (start, sum) for every window from ``first`` on, left to right."""
    if first > len(qualities) - width:
        return
    total = sum(qualities[first : first + width])
    yield first, total
    for start in range(first + 1, len(qualities) - width + 1):
        total += qualities[start + width - 1] - qualities[start - 1]
        yield start, total


def _first_failure(qualities: Sequence[int], width: int, limit: int, first: int = 0) -> int | None:
    for start, total in _window_sums(qualities, width, first):
        if total < limit:
            return start
    return None


def _first_passing(qualities: Sequence[int], width: int, limit: int) -> int | None:
    for start, total in _window_sums(qualities, width):
        if total >= limit:
            return start
    return None
