#!/usr/bin/env python3
"""Utility functions shared by the configuration models and the CLI."""

import re
from pathlib import Path
from typing import Literal


def check_output_directory(outdir: str) -> str:
    """Check if outdir exists, otherwise create it.

    Args:
        outdir: Path to the output directory.

    Returns:
        The output directory path as a string.
    """
    outdir_path = Path(outdir)
    if outdir_path.is_dir():
        return outdir
    else:
        outdir_path.mkdir(parents=True, exist_ok=True)
        return outdir


def get_sample_name(filename: str, mode: Literal["single", "paired"] = "single") -> str:
    """Get the sample name as the basename of the input files.

    Args:
        filename: Input filename to extract sample name from.
        mode: 'single' for single-end FASTQ, 'paired' for paired-end FASTQ, where
              read, lane and chunk markers (_R1, _L001, _001) are also stripped.

    Returns:
        Extracted sample name.
    """
    basename = Path(filename).name
    sample_name = basename.removesuffix(".gz").removesuffix(".gzip")
    for suffix in (".fastq", ".fq"):
        sample_name = sample_name.removesuffix(suffix)
    sample_name = sample_name.replace("_trimmed", "")

    if mode == "paired":
        if sample_name.endswith("_001"):
            sample_name = sample_name[:-4]
        if re.match(".*R[1-2]$", sample_name):
            sample_name = sample_name[:-2]
        elif re.match(".*_[1-2]$", sample_name):
            sample_name = sample_name[:-2]
        sample_name = sample_name.rstrip("_")
        if re.search(".*_L00[0-9]$", sample_name):
            sample_name = sample_name[:-5]

    return sample_name or "reads"
