"""Processing stages wrapping external tools.

A Stage describes one step of the pipeline: the program it calls, how many
units it consumes per invocation, the command line built from those units and
the run configuration, the output units and QC artifacts it declares, and
whether it takes part in a run at all. Stages are created when the graph is
built and are not modified afterwards; all per-run state lives in the graph.
"""
import contextlib
import os
from collections import namedtuple

from methylflow import utils
from methylflow.distributed import transaction
from methylflow.log import logger
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.unit import DEFAULT_INDEX, NO_ORIGIN, as_units
from methylflow.provenance import do

PENDING = "pending"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
CLOSED = "closed"


class StageResult(namedtuple("StageResult", "outputs artifacts error")):
    """Outcome of one invocation: declared outputs and artifacts, or an error.
    """
    __slots__ = ()

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, outputs, artifacts=()):
        return cls(tuple(outputs), tuple(artifacts), None)

    @classmethod
    def failure(cls, error):
        return cls((), (), error)


def always(config):
    return True


class Stage(object):
    """Base class for a step delegating to an external program.

    Subclasses set `program` and implement `command` and `outputs`, plus
    `artifacts` when they produce QC or log files for the final report.
    `arity` is the number of units expected per invocation, None for any.
    """
    program = None
    arity = 1
    emit_group = False
    publish = False

    def __init__(self, name=None, active=always, origin=NO_ORIGIN):
        self.name = name or self.__class__.__name__.lower()
        self.activation = active
        self.origin = origin

    def __repr__(self):
        return "<Stage %s>" % self.name

    def is_active(self, config):
        return bool(self.activation(config))

    def work_dir(self, units, config):
        parts = [dd.get_work_dir(config), self.name]
        origin = unit_origin(units) if self.origin == NO_ORIGIN else self.origin
        if origin != NO_ORIGIN:
            parts.append(origin)
        parts.append(sample_label(units[0]))
        return os.path.join(*parts)

    def command(self, units, out_dir, config):
        raise NotImplementedError

    def outputs(self, units, out_dir, config):
        return []

    def artifacts(self, units, out_dir, config):
        return []

    def describe(self, units):
        return "%s: %s" % (self.name, units[0].describe())

    def invoke(self, item, config, limiter=None):
        """Run the stage on one unit or group, returning a StageResult.

        Failures of the external tool, including missing declared outputs, are
        returned as the result error rather than raised.
        """
        units = as_units(item)
        if self.arity is not None and len(units) != self.arity:
            raise ValueError("%s expects %s units per call, got %s" % (self.name, self.arity, len(units)))
        out_dir = self.work_dir(units, config)
        outputs = list(self.outputs(units, out_dir, config))
        artifacts = list(self.artifacts(units, out_dir, config))
        expected = _declared_files(outputs + artifacts)
        if expected and all(os.path.exists(f) for f in expected):
            logger.info("%s: using existing outputs in %s" % (self.describe(units), out_dir))
            return StageResult.success(outputs, artifacts)
        try:
            with limiter if limiter is not None else contextlib.nullcontext():
                with transaction.tx_tmpdir(config, dd.get_work_dir(config)) as tx_dir:
                    cmd = self.command(units, tx_dir, config)
                    checks = [do.file_exists(_in_dir(f, out_dir, tx_dir)) for f in expected]
                    do.run(cmd, self.name, units[0], checks=checks, cwd=tx_dir)
                    transaction.move_directory_contents(tx_dir, out_dir)
        except do.ExternalToolFailure as e:
            return StageResult.failure(e)
        return StageResult.success(outputs, artifacts)


def sample_label(unit):
    """Directory and file name prefix for a unit: sample plus index and barcode when set.
    """
    parts = [unit.sample or utils.splitext_plus(unit.name)[0]]
    if unit.index and unit.index != DEFAULT_INDEX:
        parts.append(unit.index)
    if unit.barcode:
        parts.append(unit.barcode)
    return "-".join(parts)

def _declared_files(units):
    return [f for u in units for f in u.files]

def _in_dir(fname, out_dir, tx_dir):
    return os.path.join(tx_dir, os.path.relpath(fname, out_dir))

def unit_origin(units):
    """Shared origin tag of a set of units, or no origin when they differ.
    """
    origins = set(u.origin for u in units)
    return origins.pop() if len(origins) == 1 else NO_ORIGIN

def strip_fastq_ext(fname):
    """Base name of a read file without its fastq and compression extensions.
    """
    base = os.path.basename(fname)
    for ext in [".gz", ".bz2"]:
        if base.endswith(ext):
            base = base[:-len(ext)]
    for ext in [".fastq", ".fq"]:
        if base.endswith(ext):
            base = base[:-len(ext)]
    return base
