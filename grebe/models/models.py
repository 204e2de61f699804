from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from grebe.core.adapters import Adapter, AdapterMatcher, load_adapters_fasta, resolve_adapters
from grebe.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_ERROR_RATE,
    DEFAULT_MAX_MISMATCHES,
    DEFAULT_MIN_LENGTH,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_QUALITY_THRESHOLD,
    DEFAULT_WINDOW,
    PHRED33_OFFSET,
    SUMMARY_SUFFIX,
    TRIMMED_R1_SUFFIX,
    TRIMMED_R2_SUFFIX,
    TRIMMED_SE_SUFFIX,
    UNPAIRED_SUFFIX,
)
from grebe.core.exceptions import ConfigError
from grebe.core.pair_processor import PairProcessor
from grebe.core.quality import QualityTrimmer
from grebe.core.records import PhredEncoding
from grebe.core.streams import STDIO_PATH, is_nonempty_file
from grebe.core.utils import check_output_directory, get_sample_name


def _config_error(error: ValidationError) -> ConfigError:
    """Flatten a pydantic ValidationError into a single ConfigError message."""
    messages = []
    for detail in error.errors():
        message = str(detail["msg"]).removeprefix("Value error, ")
        location = ".".join(str(part) for part in detail.get("loc", ()))
        messages.append(f"{location}: {message}" if location else message)
    return ConfigError("; ".join(messages))


class TrimConfig(BaseModel):
    """Parameters of the trimming algorithms.

    Validation builds the adapter matcher and quality trimmer once, so invalid
    combinations (for example a mismatch budget larger than an adapter) are
    rejected before any read is processed.
    """

    adapters: list[str] = Field(default_factory=lambda: ["illumina"])
    adapter_fasta: Path | None = None

    max_mismatches: int = DEFAULT_MAX_MISMATCHES
    error_rate: float | None = DEFAULT_ERROR_RATE
    min_overlap: int = DEFAULT_MIN_OVERLAP

    quality_threshold: int = DEFAULT_QUALITY_THRESHOLD
    window: int = DEFAULT_WINDOW
    quality_strategy: Literal["window", "sliding"] = "window"
    trim_five_prime: bool = False

    min_length: int = DEFAULT_MIN_LENGTH
    min_mean_quality: float | None = None

    phred_offset: Literal[33, 64] = PHRED33_OFFSET
    pair_policy: Literal["strict", "singletons"] = "strict"
    umi_length: int = 0
    start_at: int = 0

    @classmethod
    def build(cls, **kwargs: Any) -> TrimConfig:
        """Create a config, reporting any problem as ConfigError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise _config_error(e) from None

    @model_validator(mode="after")
    def validate_parameters(self) -> TrimConfig:
        encoding = self.encoding()
        if not 0 <= self.quality_threshold <= encoding.max_score:
            raise ValueError(
                f"Quality threshold {self.quality_threshold} is outside [0, {encoding.max_score}] "
                f"for Phred+{self.phred_offset}"
            )
        if self.min_mean_quality is not None and not 0 <= self.min_mean_quality <= encoding.max_score:
            raise ValueError(f"Minimum mean quality {self.min_mean_quality} is outside [0, {encoding.max_score}]")
        if self.adapter_fasta is not None and not self.adapter_fasta.is_file():
            raise ValueError(f"Adapter file {self.adapter_fasta} does not exist.")
        # Constructing the components runs their own checks
        self.build_processor()
        return self

    def encoding(self) -> PhredEncoding:
        return PhredEncoding(self.phred_offset)

    def load_adapters(self) -> list[Adapter]:
        adapters = resolve_adapters(self.adapters)
        if self.adapter_fasta is not None:
            known = {a.sequence for a in adapters}
            adapters.extend(a for a in load_adapters_fasta(self.adapter_fasta) if a.sequence not in known)
        return adapters

    def build_processor(self) -> PairProcessor:
        matcher = AdapterMatcher(
            adapters=self.load_adapters(),
            max_mismatches=self.max_mismatches,
            min_overlap=self.min_overlap,
            error_rate=self.error_rate,
        )
        trimmer = QualityTrimmer(
            threshold=self.quality_threshold,
            window=self.window,
            strategy=self.quality_strategy,
            trim_five_prime=self.trim_five_prime,
        )
        return PairProcessor(
            matcher=matcher,
            trimmer=trimmer,
            min_length=self.min_length,
            min_mean_quality=self.min_mean_quality,
            pair_policy=self.pair_policy,
            start_at=self.start_at,
            umi_length=self.umi_length,
        )


class TrimRunConfig(BaseModel):
    """Inputs, outputs and execution settings of one trimming run.

    Output paths not given explicitly are derived from ``output_path`` and the
    sample name, e.g. ``{sample}_R1_trimmed.fastq.gz``.
    """

    read1: Path
    read2: Path | None = None
    output_path: Path | None = None
    sample_name: str | None = None
    out1: Path | None = None
    out2: Path | None = None
    unpaired: Path | None = None
    summary: Path | None = None
    force: bool = False
    threads: int = 1
    batch_size: int = DEFAULT_BATCH_SIZE
    trim: TrimConfig = Field(default_factory=TrimConfig)

    # Derived fields
    mode: Literal["single", "paired"] = "single"

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def build(cls, **kwargs: Any) -> TrimRunConfig:
        """Create a run config, reporting any problem as ConfigError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise _config_error(e) from None

    @model_validator(mode="after")
    def validate_and_configure(self) -> TrimRunConfig:
        self.mode = "paired" if self.read2 else "single"

        if self.threads < 1:
            raise ValueError(f"threads must be at least 1, got {self.threads}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

        # Check input file existence
        inputs = [self.read1] + ([self.read2] if self.read2 else [])
        if sum(str(p) == STDIO_PATH for p in inputs) > 1:
            raise ValueError("Only one input can be read from standard input.")
        for label, path in zip(("r1", "r2"), inputs):
            if str(path) != STDIO_PATH and not path.is_file():
                raise ValueError(f"The file specified as {label} ({path}) does not exist.")

        if not self.sample_name:
            source = self.read1 if str(self.read1) != STDIO_PATH else (self.read2 or Path("reads"))
            self.sample_name = get_sample_name(str(source), self.mode)

        if self.output_path is not None:
            self.output_path = Path(check_output_directory(str(self.output_path)))
            if self.out1 is None:
                suffix = TRIMMED_R1_SUFFIX if self.mode == "paired" else TRIMMED_SE_SUFFIX
                self.out1 = self.output_path / f"{self.sample_name}{suffix}"
            if self.mode == "paired" and self.out2 is None:
                self.out2 = self.output_path / f"{self.sample_name}{TRIMMED_R2_SUFFIX}"
            if self.mode == "paired" and self.trim.pair_policy == "singletons" and self.unpaired is None:
                self.unpaired = self.output_path / f"{self.sample_name}{UNPAIRED_SUFFIX}"
            if self.summary is None:
                self.summary = self.output_path / f"{self.sample_name}{SUMMARY_SUFFIX}"

        if self.out1 is None:
            raise ValueError("An output directory or an explicit R1 output path is required.")
        if self.mode == "paired" and self.out2 is None:
            raise ValueError("An output directory or an explicit R2 output path is required in paired mode.")
        if self.mode == "single" and self.out2 is not None:
            raise ValueError("An R2 output was given but no R2 input.")
        if self.mode == "single" and self.unpaired is not None:
            raise ValueError("Unpaired output is only meaningful when both an R1 and R2 file are supplied.")
        if self.mode == "paired" and self.trim.pair_policy == "singletons" and self.unpaired is None:
            raise ValueError(
                "The singletons pair policy needs an unpaired output; set an output directory or an unpaired path."
            )

        # Refuse to clobber existing results unless forced
        outputs = self.output_files()
        resolved_inputs = {p.resolve() for p in inputs if str(p) != STDIO_PATH}
        seen: set[Path] = set()
        for path in outputs:
            if str(path) == STDIO_PATH:
                continue
            resolved = path.resolve()
            if resolved in resolved_inputs:
                raise ValueError(f"Output {path} would overwrite an input file.")
            if resolved in seen:
                raise ValueError(f"Output {path} is used more than once.")
            seen.add(resolved)
            if is_nonempty_file(path) and not self.force:
                raise ValueError(f"The file {path} already exists. Overwrite it by setting force=True")
        if sum(str(p) == STDIO_PATH for p in outputs) > 1:
            raise ValueError("Only one output can be written to standard output.")

        return self

    def output_files(self) -> list[Path]:
        """Every FASTQ output of the run, in R1, R2, unpaired order."""
        return [p for p in (self.out1, self.out2, self.unpaired) if p is not None]
