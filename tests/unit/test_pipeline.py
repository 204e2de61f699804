"""Unit tests for grebe.pipeline module."""

import gzip
import io
import json

import pytest
from grebe.core.exceptions import FormatError, PairMismatchError
from grebe.core.fastq_io import FastqReader, FastqWriter
from grebe.core.pair_processor import TrimCounters
from grebe.core.records import PhredEncoding
from grebe.models.models import TrimConfig, TrimRunConfig
import grebe.pipeline as pipeline
from grebe.pipeline import TrimSummary, iter_mate_pairs, run_trimming, trim_streams, write_summary

from tests.conftest import fastq_text, make_record, read_fastq_names


def _reader(records, source, offset=33):
    return FastqReader(io.BytesIO(fastq_text(records, offset).encode()), PhredEncoding(offset), source=source)


def _records(n, prefix="read"):
    return [make_record(f"{prefix}{i}", "ACTTACTTCATCATTACCATACCTT") for i in range(n)]


def _first_words(path):
    return [name.split()[0] for name in read_fastq_names(path)]


class TestIterMatePairs:
    """Tests for lockstep pairing of the two mate streams."""

    def test_pairs_in_order(self):
        pairs = list(iter_mate_pairs(_reader(_records(3), "a"), _reader(_records(3), "b")))
        assert [p.index for p in pairs] == [0, 1, 2]
        assert all(p.is_paired for p in pairs)
        assert pairs[2].forward.name == "read2"

    def test_single_end(self):
        pairs = list(iter_mate_pairs(_reader(_records(2), "a")))
        assert [p.reverse for p in pairs] == [None, None]

    def test_forward_stream_longer(self):
        """10 records in A against 9 in B is fatal."""
        pairs = iter_mate_pairs(_reader(_records(10), "R1.fastq"), _reader(_records(9), "R2.fastq"))
        with pytest.raises(PairMismatchError, match="R2.fastq ended after 9 records"):
            list(pairs)

    def test_reverse_stream_longer(self):
        pairs = iter_mate_pairs(_reader(_records(4), "R1.fastq"), _reader(_records(5), "R2.fastq"))
        with pytest.raises(PairMismatchError, match="R1.fastq ended after 4 records"):
            list(pairs)

    def test_both_empty(self):
        assert list(iter_mate_pairs(_reader([], "a"), _reader([], "b"))) == []


class TestTrimStreams:
    """Tests for driving the processor between readers and writers."""

    def _run(self, paired_reads, threads=1, batch_size=4, **trim_kwargs):
        r1, r2 = paired_reads
        out1, out2, unpaired = io.BytesIO(), io.BytesIO(), io.BytesIO()
        counters = trim_streams(
            _reader(r1, "R1"),
            _reader(r2, "R2"),
            FastqWriter(out1),
            FastqWriter(out2),
            TrimConfig(**trim_kwargs).build_processor(),
            unpaired_writer=FastqWriter(unpaired),
            threads=threads,
            batch_size=batch_size,
        )
        return counters, out1.getvalue(), out2.getvalue(), unpaired.getvalue()

    def test_counters(self, paired_reads):
        counters, *_ = self._run(paired_reads)
        assert counters.pairs_total == 12
        assert counters.pairs_kept == 10
        assert counters.pairs_dropped_adapter_only == 1
        assert counters.pairs_dropped_short == 1
        assert counters.pairs_dropped_quality == 0
        assert counters.reads_with_adapter == 6
        assert counters.bases_in == 1200
        assert counters.bases_out == 907

    def test_pairing_invariant(self, paired_reads):
        _, out1, out2, unpaired = self._run(paired_reads)
        names1 = [line.split()[0] for line in out1.decode().splitlines()[::4]]
        names2 = [line.split()[0] for line in out2.decode().splitlines()[::4]]
        assert names1 == names2
        assert "@read8" not in names1
        assert "@read10" not in names1
        assert unpaired == b""

    def test_output_order_follows_input(self, paired_reads):
        _, out1, _, _ = self._run(paired_reads, batch_size=1)
        names = [line.split()[0] for line in out1.decode().splitlines()[::4]]
        assert names == [f"@read{i}" for i in (0, 1, 2, 3, 4, 5, 6, 7, 9, 11)]

    def test_trimmed_lengths(self, paired_reads):
        _, out1, out2, _ = self._run(paired_reads)
        seqs1 = out1.decode().splitlines()[1::4]
        seqs2 = out2.decode().splitlines()[1::4]
        assert [len(s) for s in seqs1] == [50] * 6 + [30, 30, 50, 50]
        assert [len(s) for s in seqs2] == [50] * 6 + [30, 30, 42, 45]

    def test_singletons(self, paired_reads):
        counters, _, _, unpaired = self._run(paired_reads, pair_policy="singletons")
        assert counters.singletons_kept == 2
        assert [line.split()[0] for line in unpaired.decode().splitlines()[::4]] == ["@read8", "@read10"]
        assert counters.bases_out == 1007

    def test_singletons_need_unpaired_writer(self, paired_reads):
        """Kept singletons must have somewhere to go."""
        r1, r2 = paired_reads
        out1, out2 = io.BytesIO(), io.BytesIO()
        with pytest.raises(ValueError, match="unpaired writer"):
            trim_streams(
                _reader(r1, "R1"),
                _reader(r2, "R2"),
                FastqWriter(out1),
                FastqWriter(out2),
                TrimConfig(pair_policy="singletons").build_processor(),
            )
        assert out1.getvalue() == out2.getvalue() == b""

    def test_progress_callback(self, paired_reads):
        r1, r2 = paired_reads
        seen = []
        trim_streams(
            _reader(r1, "R1"),
            _reader(r2, "R2"),
            FastqWriter(io.BytesIO()),
            FastqWriter(io.BytesIO()),
            TrimConfig().build_processor(),
            batch_size=5,
            progress_callback=seen.append,
        )
        assert seen == [5, 5, 2]

    def test_mismatch_stops_before_last_pair_is_written(self):
        out1 = io.BytesIO()
        with pytest.raises(PairMismatchError):
            trim_streams(
                _reader(_records(10), "R1"),
                _reader(_records(9), "R2"),
                FastqWriter(out1),
                FastqWriter(io.BytesIO()),
                TrimConfig().build_processor(),
                batch_size=4,
            )
        assert b"@read9\n" not in out1.getvalue()

    @pytest.mark.slow
    def test_threads_match_serial_output(self, paired_reads):
        serial = self._run(paired_reads, threads=1, batch_size=3)
        parallel = self._run(paired_reads, threads=2, batch_size=3)
        assert parallel[1:] == serial[1:]
        assert parallel[0] == serial[0]


class TestRunTrimming:
    """End-to-end runs on files."""

    def test_paired_run(self, paired_fastq_files, temp_output_dir):
        read1, read2 = paired_fastq_files
        out_dir = temp_output_dir / "out"
        config = TrimRunConfig(read1=read1, read2=read2, output_path=out_dir)

        summary = run_trimming(config)

        assert summary.counters.pairs_kept == 10
        assert summary.sample_name == "sample"
        assert (out_dir / "sample_R1_trimmed.fastq.gz").exists()
        names1 = _first_words(out_dir / "sample_R1_trimmed.fastq.gz")
        names2 = _first_words(out_dir / "sample_R2_trimmed.fastq.gz")
        assert names1 == names2
        assert len(names1) == 10

        summary_lines = (out_dir / "sample_trim_summary.tsv").read_text().splitlines()
        assert summary_lines[0] == "metric\tvalue"
        assert "pairs_kept\t10" in summary_lines

    def test_gzip_input(self, temp_output_dir, write_fastq, paired_reads):
        r1, r2 = paired_reads
        read1 = write_fastq(temp_output_dir / "gz_R1.fastq.gz", r1)
        read2 = write_fastq(temp_output_dir / "gz_R2.fastq.gz", r2)
        out1 = temp_output_dir / "trimmed_R1.fastq"
        out2 = temp_output_dir / "trimmed_R2.fastq"

        summary = run_trimming(TrimRunConfig(read1=read1, read2=read2, out1=out1, out2=out2))

        assert summary.counters.pairs_total == 12
        assert out1.read_text().startswith("@read0 1:N:0:ACGT\n")

    def test_phred64_round_trip(self, temp_output_dir, write_fastq, paired_reads):
        r1, r2 = paired_reads
        read1 = write_fastq(temp_output_dir / "p64_R1.fastq", r1, offset=64)
        read2 = write_fastq(temp_output_dir / "p64_R2.fastq", r2, offset=64)
        out1 = temp_output_dir / "out_R1.fastq"
        config = TrimRunConfig(
            read1=read1,
            read2=read2,
            out1=out1,
            out2=temp_output_dir / "out_R2.fastq",
            trim=TrimConfig(phred_offset=64),
        )

        summary = run_trimming(config)

        assert summary.counters.pairs_kept == 10
        first_quality = out1.read_text().splitlines()[3]
        assert first_quality == "h" * 50

    def test_phred33_file_rejected_as_phred64(self, paired_fastq_files, temp_output_dir):
        read1, read2 = paired_fastq_files
        config = TrimRunConfig(
            read1=read1,
            read2=read2,
            out1=temp_output_dir / "o1.fastq",
            out2=temp_output_dir / "o2.fastq",
            trim=TrimConfig(phred_offset=64),
        )
        with pytest.raises(FormatError, match="out of range"):
            run_trimming(config)

    def test_umi_extraction(self, paired_fastq_files, temp_output_dir, insert_sequences):
        read1, read2 = paired_fastq_files
        out1 = temp_output_dir / "umi_R1.fastq"
        out2 = temp_output_dir / "umi_R2.fastq"
        config = TrimRunConfig(read1=read1, read2=read2, out1=out1, out2=out2, trim=TrimConfig(umi_length=8))

        run_trimming(config)

        umi = insert_sequences[0][:8]
        lines1 = out1.read_text().splitlines()
        assert lines1[0] == f"@read0:{umi} 1:N:0:ACGT"
        assert lines1[1] == insert_sequences[0][8:50]
        assert out2.read_text().splitlines()[0] == f"@read0:{umi} 2:N:0:ACGT"

    def test_singletons_written_to_unpaired(self, paired_fastq_files, temp_output_dir):
        read1, read2 = paired_fastq_files
        out_dir = temp_output_dir / "out"
        config = TrimRunConfig(
            read1=read1,
            read2=read2,
            output_path=out_dir,
            summary=out_dir / "summary.json",
            trim=TrimConfig(pair_policy="singletons"),
        )

        run_trimming(config)

        assert _first_words(out_dir / "sample_unpaired_trimmed.fastq.gz") == ["read8", "read10"]
        data = json.loads((out_dir / "summary.json").read_text())
        assert data["singletons_kept"] == 2
        assert data["pairs_dropped"] == 2

    def test_mismatched_files(self, temp_output_dir, write_fastq):
        read1 = write_fastq(temp_output_dir / "m_R1.fastq", _records(10))
        read2 = write_fastq(temp_output_dir / "m_R2.fastq", _records(9))
        config = TrimRunConfig(
            read1=read1, read2=read2, out1=temp_output_dir / "o1.fastq.gz", out2=temp_output_dir / "o2.fastq.gz"
        )
        with pytest.raises(PairMismatchError):
            run_trimming(config)
        # Outputs are closed properly, leaving valid (empty) gzip files
        with gzip.open(temp_output_dir / "o1.fastq.gz", "rb") as f:
            assert f.read() == b""

    def test_malformed_record(self, temp_output_dir, write_fastq):
        read1 = write_fastq(temp_output_dir / "bad_R1.fastq", _records(3))
        read2 = temp_output_dir / "bad_R2.fastq"
        read2.write_text(fastq_text(_records(2)) + "@read2\nACGT\n+\nIII\n")
        config = TrimRunConfig(
            read1=read1, read2=read2, out1=temp_output_dir / "o1.fastq", out2=temp_output_dir / "o2.fastq"
        )
        with pytest.raises(FormatError) as exc_info:
            run_trimming(config)
        assert exc_info.value.record_number == 3
        assert str(read2) in str(exc_info.value)


def test_write_summary_json(tmp_path):
    summary = TrimSummary(sample_name="s", mode="paired", counters=TrimCounters(pairs_total=4, pairs_kept=3))
    path = tmp_path / "summary.json"
    write_summary(summary, path)
    data = json.loads(path.read_text())
    assert data["pairs_total"] == 4
    assert data["fraction_kept"] == 0.75


def test_worker_without_processor(monkeypatch):
    monkeypatch.setattr(pipeline, "_worker_processor", None)
    with pytest.raises(RuntimeError, match="without a pair processor"):
        pipeline._process_batch_in_worker(list(iter_mate_pairs(_reader(_records(1), "a"))))
