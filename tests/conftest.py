"""Shared pytest fixtures for grebe tests."""

import gzip
import random
import shutil
import tempfile
from pathlib import Path

import pytest
from grebe.core.constants import ADAPTER_PRESETS
from grebe.core.records import FastqRecord

ILLUMINA = ADAPTER_PRESETS["illumina"]


def make_record(name, sequence, quality=40, comment=""):
    """Build a record with a constant quality or an explicit list of scores."""
    qualities = (quality,) * len(sequence) if isinstance(quality, int) else tuple(quality)
    return FastqRecord(name=name, sequence=sequence, qualities=qualities, comment=comment)


def fastq_text(records, offset=33):
    """Serialize records the way a sequencer would."""
    lines = []
    for record in records:
        lines.append(f"@{record.name}")
        lines.append(record.sequence)
        lines.append(f"+{record.comment}")
        lines.append("".join(chr(q + offset) for q in record.qualities))
    return "\n".join(lines) + "\n"


def read_fastq_names(path):
    """Return the read names of a (possibly gzipped) FASTQ file."""
    opener = gzip.open if str(path).endswith(".gz") else open
    with opener(path, "rt") as f:
        return [line[1:].rstrip("\n") for i, line in enumerate(f) if i % 4 == 0]


@pytest.fixture
def temp_output_dir():
    """Create a temporary directory for test outputs."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir)


@pytest.fixture
def write_fastq():
    """Return a function writing records to a plain or gzipped FASTQ file."""

    def _write(path, records, offset=33, compress=None):
        path = Path(path)
        text = fastq_text(records, offset)
        if compress is None:
            compress = path.suffix == ".gz"
        if compress:
            with gzip.open(path, "wt") as f:
                f.write(text)
        else:
            path.write_text(text)
        return path

    return _write


@pytest.fixture
def insert_sequences():
    """Deterministic inserts over A, C and T only.

    Without any G, no stretch of an insert can resemble the Illumina adapter, so
    adapter hits in the fixtures come only from where the adapter is placed.
    """
    rng = random.Random(7)
    return ["".join(rng.choice("ACT") for _ in range(60)) for _ in range(12)]


@pytest.fixture
def paired_reads(insert_sequences):
    """Twelve read pairs of 50 bases covering the main trimming outcomes.

    - pairs 0-5: clean, kept untouched
    - pairs 6-7: adapter after 30 bases in both mates, kept at 30 bases
    - pair 8: adapter after 10 bases in R1, dropped for the adapter
    - pair 9: R2 has a 3' tail of quality 2, kept after quality trimming
    - pair 10: R1 is entirely quality 2, dropped as short
    - pair 11: R2 has a 5-base adapter overlap at its 3' end
    """
    r1, r2 = [], []
    for i, insert in enumerate(insert_sequences):
        seq1, seq2 = insert[:50], insert[10:60]
        q1 = q2 = 40
        if i in (6, 7):
            seq1 = insert[:30] + ILLUMINA + "ACTCACT"
            seq2 = insert[30:60] + ILLUMINA + "CATTCAT"
        elif i == 8:
            seq1 = insert[:10] + ILLUMINA + insert[:27]
        elif i == 9:
            q2 = [40] * 40 + [2] * 10
        elif i == 10:
            q1 = 2
        elif i == 11:
            seq2 = insert[:45] + ILLUMINA[:5]
        r1.append(make_record(f"read{i} 1:N:0:ACGT", seq1, q1))
        r2.append(make_record(f"read{i} 2:N:0:ACGT", seq2, q2))
    return r1, r2


@pytest.fixture
def paired_fastq_files(temp_output_dir, write_fastq, paired_reads):
    """The paired_reads fixture written to sample_R1/R2 FASTQ files."""
    r1, r2 = paired_reads
    read1 = write_fastq(temp_output_dir / "sample_R1.fastq", r1)
    read2 = write_fastq(temp_output_dir / "sample_R2.fastq", r2)
    return read1, read2
