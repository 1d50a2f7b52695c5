"""Pytest fixtures and test helper functions"""

import os

import pytest


@pytest.fixture
def work_dir(tmp_path):
    """Provide and manage output directory for tests"""
    original_dir = os.getcwd()
    os.chdir(str(tmp_path))
    yield str(tmp_path)
    os.chdir(original_dir)


@pytest.fixture
def run_config(work_dir):
    """Minimal validated run configuration rooted in the test directory."""
    ref_dir = os.path.join(work_dir, "genome")
    os.makedirs(ref_dir)
    return {
        "algorithm": {"num_cores": 2, "max_concurrent": 2},
        "reference": {"primary": ref_dir},
        "input": {"pattern": os.path.join(work_dir, "fastq", "*.fastq.gz")},
        "dirs": {"work": os.path.join(work_dir, "work"),
                 "outdir": os.path.join(work_dir, "results")},
        "resources": {},
    }


@pytest.fixture
def touch():
    """Create files with content, returning their paths."""
    def _touch(*fnames, **kwargs):
        content = kwargs.get("content", "x")
        for fname in fnames:
            if os.path.dirname(fname):
                os.makedirs(os.path.dirname(fname), exist_ok=True)
            with open(fname, "w") as out_handle:
                out_handle.write(content)
        return list(fnames)
    return _touch
