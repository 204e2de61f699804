#!/usr/bin/env python3
"""Per-pair trimming and filtering.

Adapter and quality trim points are both computed against the untouched read
and intersected, so neither signal is applied to an already shortened read.
Filters then run in order: minimum retained length, then minimum mean quality.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Literal

from grebe.core.adapters import AdapterMatch, AdapterMatcher
from grebe.core.exceptions import ConfigError
from grebe.core.quality import QualityTrimmer
from grebe.core.records import FastqRecord, MatePair, TrimDecision

PairPolicy = Literal["strict", "singletons"]


class DiscardReason(str, Enum):
    """Why a mate (and therefore its pair) was dropped."""

    ADAPTER = "adapter"  # adapter removal alone leaves the read too short
    SHORT = "short"  # too short after trimming, including fully quality-trimmed reads
    QUALITY = "quality"  # long enough, but mean quality below the floor


@dataclass
class TrimCounters:
    """Run-wide counters; per-batch instances are merged with ``+``."""

    pairs_total: int = 0
    pairs_kept: int = 0
    pairs_dropped_adapter_only: int = 0
    pairs_dropped_short: int = 0
    pairs_dropped_quality: int = 0
    singletons_kept: int = 0
    reads_with_adapter: int = 0
    bases_in: int = 0
    bases_out: int = 0

    def __add__(self, other: TrimCounters) -> TrimCounters:
        return TrimCounters(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def __iadd__(self, other: TrimCounters) -> TrimCounters:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    @property
    def pairs_dropped(self) -> int:
        return self.pairs_dropped_adapter_only + self.pairs_dropped_short + self.pairs_dropped_quality

    def record_discard(self, reason: DiscardReason) -> None:
        if reason is DiscardReason.ADAPTER:
            self.pairs_dropped_adapter_only += 1
        elif reason is DiscardReason.SHORT:
            self.pairs_dropped_short += 1
        else:
            self.pairs_dropped_quality += 1

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class MateResult:
    """Outcome of trimming one read."""

    record: FastqRecord
    decision: TrimDecision
    adapter_hit: AdapterMatch | None = None
    reason: DiscardReason | None = None

    @property
    def passed(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class PairOutcome:
    """What to write for one input pair.

    ``forward``/``reverse`` are set only when the pair survives; ``singleton``
    holds a lone surviving mate under the singleton policy.
    """

    index: int
    forward: FastqRecord | None = None
    reverse: FastqRecord | None = None
    singleton: FastqRecord | None = None
    reason: DiscardReason | None = None

    @property
    def kept(self) -> bool:
        return self.forward is not None


def extract_umi(name: str, umi: str) -> str:
    """Append a UMI to the first word of a read name, keeping any comment."""
    parts = name.split(" ", 1)
    new_name = f"{parts[0]}:{umi}"
    if len(parts) > 1:
        new_name += f" {parts[1]}"
    return new_name


@dataclass
class PairProcessor:
    """Trim and filter mate pairs (or single reads).

    Args:
        matcher: Adapter matcher applied to every mate.
        trimmer: Quality trimmer applied to every mate.
        min_length: Mates retaining fewer bases are discarded.
        min_mean_quality: Mates whose retained bases average below this are discarded.
        pair_policy: "strict" drops the whole pair when either mate fails;
            "singletons" additionally reports a lone surviving mate.
        start_at: Bases always removed from the 5' end of every read.
        umi_length: Leading bases of the forward read moved into both read names.
    """

    matcher: AdapterMatcher
    trimmer: QualityTrimmer
    min_length: int = 20
    min_mean_quality: float | None = None
    pair_policy: PairPolicy = "strict"
    start_at: int = 0
    umi_length: int = 0
    counters: TrimCounters = field(default_factory=TrimCounters)

    def __post_init__(self) -> None:
        if self.min_length < 0:
            raise ConfigError(f"min_length must be >= 0, got {self.min_length}")
        if self.start_at < 0:
            raise ConfigError(f"start_at must be >= 0, got {self.start_at}")
        if self.umi_length < 0:
            raise ConfigError(f"umi_length must be >= 0, got {self.umi_length}")
        if self.pair_policy not in ("strict", "singletons"):
            raise ConfigError(f"Unknown pair policy {self.pair_policy!r}")

    def trim_mate(self, record: FastqRecord, five_prime_cut: int = 0) -> MateResult:
        """Trim one read and decide whether it passes the filters."""
        length = len(record)
        hit = self.matcher.match(record.sequence)
        adapter_end = length if hit is None else hit.position

        quality = self.trimmer.decide(record.qualities)
        decision = quality.intersect(TrimDecision(min(five_prime_cut, adapter_end), adapter_end))
        trimmed = record.trim(decision)

        reason = None
        if decision.length < self.min_length:
            adapter_only_length = max(adapter_end - five_prime_cut, 0)
            if hit is not None and adapter_only_length < self.min_length:
                reason = DiscardReason.ADAPTER
            else:
                reason = DiscardReason.SHORT
        elif self.min_mean_quality and trimmed.mean_quality() < self.min_mean_quality:
            reason = DiscardReason.QUALITY

        return MateResult(record=trimmed, decision=decision, adapter_hit=hit, reason=reason)

    def process(self, pair: MatePair, counters: TrimCounters | None = None) -> PairOutcome:
        """Trim and filter one pair, updating ``counters`` (the processor's own by default)."""
        counters = self.counters if counters is None else counters
        counters.pairs_total += 1

        forward, reverse = pair.forward, pair.reverse
        forward_cut = reverse_cut = self.start_at
        if self.umi_length > 0:
            umi = forward.sequence[: self.umi_length]
            forward = forward.with_name(extract_umi(forward.name, umi))
            if reverse is not None:
                reverse = reverse.with_name(extract_umi(reverse.name, umi))
            forward_cut = max(self.start_at, self.umi_length)

        results = [self.trim_mate(forward, forward_cut)]
        if reverse is not None:
            results.append(self.trim_mate(reverse, reverse_cut))

        for original, result in zip((forward, reverse), results):
            counters.bases_in += len(original)  # type: ignore[arg-type]
            if result.adapter_hit is not None:
                counters.reads_with_adapter += 1

        failed = [r for r in results if not r.passed]
        if not failed:
            counters.pairs_kept += 1
            counters.bases_out += sum(len(r.record) for r in results)
            return PairOutcome(
                index=pair.index,
                forward=results[0].record,
                reverse=results[1].record if len(results) > 1 else None,
            )

        reason = failed[0].reason
        counters.record_discard(reason)  # type: ignore[arg-type]

        singleton = None
        if self.pair_policy == "singletons" and len(results) == 2 and len(failed) == 1:
            singleton = next(r.record for r in results if r.passed)
            counters.singletons_kept += 1
            counters.bases_out += len(singleton)
        return PairOutcome(index=pair.index, singleton=singleton, reason=reason)

    def process_batch(self, pairs: Iterable[MatePair]) -> tuple[list[PairOutcome], TrimCounters]:
        """Process pairs with fresh counters, as done by each worker."""
        counters = TrimCounters()
        outcomes = [self.process(pair, counters) for pair in pairs]
        return outcomes, counters
