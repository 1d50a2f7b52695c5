"""Build and drive a directed graph of stages connected by channels.

The graph is wired explicitly: every stage is added with the channel it reads
from and returns the channel it writes to, so a whole pipeline can be rebuilt
per run, or per test with stand-in stages. Running the graph starts one
consumer thread per stage; each unit or group a stage receives is processed
on a shared worker pool, with external program calls capped by a semaphore.

Failures are isolated to the branch (key and origin) they occur on. A failed
unit is recorded and produces nothing downstream while sibling branches keep
running.
"""
import datetime
import threading
from collections import namedtuple
from concurrent import futures

from methylflow.distributed.channel import (Channel, ChannelError, GroupingChannel,
                                            group_key, merge, EMPTY)
from methylflow.log import logger
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.keys import PatternMismatch
from methylflow.pipeline.stage import PENDING, RUNNING, SUCCEEDED, FAILED, CLOSED
from methylflow.pipeline.unit import CONTROL_ORIGINS, NO_ORIGIN, PRIMARY, as_units
from methylflow.upload import filesystem


class BranchFailure(namedtuple("BranchFailure", "stage key origin names error")):
    __slots__ = ()

    @property
    def diagnostics(self):
        return getattr(self.error, "diagnostics", "") or str(self.error)

    def describe(self):
        where = "%s/%s" % (self.key.sample, self.key.index) if self.key else ", ".join(self.names)
        if self.origin != NO_ORIGIN:
            where = "%s (%s)" % (where, self.origin)
        return "%s failed for %s: %s" % (self.stage, where, self.error)


RunOutcome = namedtuple("RunOutcome", ["success", "failures", "incomplete", "states",
                                       "reports", "results", "published", "started", "finished"])


def make_failure(stage_name, units, error, origin=None):
    units = as_units(units)
    first = units[0] if units else None
    key = first.key if first is not None and first.sample else None
    if origin is None:
        origin = first.origin if first is not None else NO_ORIGIN
    return BranchFailure(stage_name, key, origin, tuple(u.name for u in units), error)


class Node(object):
    """A stage bound to its input, output and artifact channels for one run.
    """
    def __init__(self, graph, stage, source, output):
        self.graph = graph
        self.stage = stage
        self.name = stage.name if stage.origin == NO_ORIGIN else "%s:%s" % (stage.name, stage.origin)
        self.source = source
        self.output = output
        self.artifacts = Channel("%s.artifacts" % self.name)
        self.failures = []
        self.history = [PENDING]
        self.status = PENDING
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._consume, name=self.name)

    def __repr__(self):
        return "<Node %s %s>" % (self.name, self.state)

    @property
    def state(self):
        return self.history[-1]

    def _transition(self, state):
        with self._lock:
            if self.history[-1] != state:
                self.history.append(state)

    def start(self):
        self._thread.start()

    def join(self):
        self._thread.join()

    def _consume(self):
        pending = []
        self._transition(RUNNING)
        try:
            for item in self.source:
                pending.append(self.graph.executor.submit(self._process, item))
            for future in futures.as_completed(pending):
                future.result()
        finally:
            self.status = FAILED if self.failures else SUCCEEDED
            self._transition(self.status)
            self.output.close()
            self.artifacts.close()
            self._transition(CLOSED)

    def _process(self, item):
        try:
            self._handle(item)
        except Exception as e:
            logger.exception("Unexpected error in %s" % self.name)
            self.fail(item, e)

    def _handle(self, item):
        config = self.graph.config
        result = self.stage.invoke(item, config, self.graph.limiter)
        if not result.ok:
            self.fail(item, result.error)
            return
        for artifact in result.artifacts:
            self._push(self.artifacts, artifact)
        if self.stage.publish:
            published = [filesystem.publish(unit, config) for unit in result.outputs]
            for unit in published:
                self.graph.record_published(unit)
        if self.stage.emit_group:
            if result.outputs:
                self._push(self.output, tuple(result.outputs))
        else:
            for unit in result.outputs:
                self._push(self.output, unit)

    def _push(self, channel, item):
        try:
            channel.push(item)
        except (PatternMismatch, ChannelError) as e:
            self.fail(getattr(e, "units", None) or item, e)

    def fail(self, item, error):
        units = as_units(item)
        origin = self.stage.origin if self.stage.origin != NO_ORIGIN else None
        failure = make_failure(self.name, units, error, origin)
        diag = getattr(error, "diagnostics", "")
        logger.error("%s%s" % (failure.describe(), "\n" + diag if diag else ""))
        with self._lock:
            self.failures.append(failure)


class Graph(object):
    """Wire stages into a processing graph and run it to completion.

    reporter -- callable taking the deduplicated terminal artifacts, the run
    configuration and the concurrency limiter, returning a StageResult. It is
    not called when no artifacts were produced.
    """
    def __init__(self, config, num_workers=None, max_concurrent=None, reporter=None):
        self.config = config
        self.num_workers = int(num_workers or dd.get_num_cores(config))
        self.max_concurrent = int(max_concurrent or dd.get_max_concurrent(config))
        self.limiter = threading.BoundedSemaphore(self.max_concurrent)
        self.reporter = reporter
        self.nodes = []
        self.channels = []
        self.skipped = []
        self.failures = []
        self.executor = None
        self._seeds = []
        self._terminals = []
        self._published = []
        self._published_lock = threading.Lock()

    def channel(self, name, producers=1):
        c = Channel(name, producers)
        self.channels.append(c)
        return c

    def grouping(self, name, size, key_fn=group_key, producers=1, arrange=None):
        c = GroupingChannel(name, size, key_fn, producers, arrange)
        self.channels.append(c)
        return c

    def merge(self, *sources, **kwargs):
        c = merge(*sources, **kwargs)
        self.channels.append(c)
        return c

    def add(self, stage, source, output=None):
        """Add a stage reading from `source`, returning the channel it writes to.

        Inactive stages are not added; their input channel is returned so
        downstream stages read the unchanged units.
        """
        if not stage.is_active(self.config):
            logger.info("Stage %s inactive for this run, passing inputs through" % stage.name)
            self.skipped.append(stage.name)
            return source
        node_input = source.subscribe(self.channel("%s.in" % stage.name))
        if output is None:
            output = self.channel("%s.out" % stage.name)
        node = Node(self, stage, node_input, output)
        self.nodes.append(node)
        return output

    def seed(self, channel, units):
        """Register the initial units, pushed into `channel` when the run starts.
        """
        self._seeds.append((channel, list(units)))

    def terminal(self, source, name):
        """Collect everything reaching `source` into the run results under `name`.
        """
        self._terminals.append((name, source.subscribe(self.channel("%s.results" % name))))

    def record_published(self, unit):
        with self._published_lock:
            self._published.append(unit)

    def _push_seeds(self):
        for channel, units in self._seeds:
            for unit in units:
                try:
                    channel.push(unit)
                except (PatternMismatch, ChannelError) as e:
                    failure = make_failure("input", getattr(e, "units", None) or unit, e)
                    logger.error(failure.describe())
                    self.failures.append(failure)
            channel.close()

    def run(self):
        """Start every stage, seed the inputs and wait for all branches to finish.
        """
        started = datetime.datetime.now()
        reports = self.merge(*[n.artifacts for n in self.nodes], name="reports")
        logger.info("Running %s stages on %s workers, at most %s external programs at once" %
                    (len(self.nodes), self.num_workers, self.max_concurrent))
        with futures.ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            self.executor = executor
            for node in self.nodes:
                node.start()
            self._push_seeds()
            for node in self.nodes:
                node.join()
        self.executor = None
        collected = _dedupe(reports.collect_all())
        if collected is EMPTY:
            logger.info("No QC artifacts produced, skipping report generation")
        elif self.reporter is not None:
            result = self.reporter(collected, self.config, self.limiter)
            if not result.ok:
                failure = make_failure("report", (), result.error, origin=NO_ORIGIN)
                logger.error(failure.describe())
                self.failures.append(failure)
        results = dict((name, c.collect_all()) for name, c in self._terminals)
        failures = self.failures + [f for n in self.nodes for f in n.failures]
        incomplete = [e for c in self.channels if isinstance(c, GroupingChannel) for e in c.incomplete]
        failures += [_lost_primary(e) for e in incomplete if _holds_primary(e)]
        states = dict((n.name, n.status) for n in self.nodes)
        for name in self.skipped:
            states.setdefault(name, CLOSED)
        success = not any(_is_mandatory(f, self.config) for f in failures)
        return RunOutcome(success, failures, incomplete, states, collected, results,
                          list(self._published), started, datetime.datetime.now())


def _is_mandatory(failure, config):
    return failure.origin not in CONTROL_ORIGINS or dd.get_controls_required(config)

def _dedupe(units):
    """Drop artifacts already seen under the same file paths, keeping first arrival order.
    """
    if units is EMPTY:
        return EMPTY
    seen = set()
    out = []
    for unit in units:
        if unit.files not in seen:
            seen.add(unit.files)
            out.append(unit)
    return out

def _holds_primary(incomplete):
    return any(u.origin == PRIMARY for u in incomplete.units)

def _lost_primary(incomplete):
    """Primary results stranded in a partial group never reach their terminal stage.
    """
    units = [u for u in incomplete.units if u.origin == PRIMARY]
    return make_failure(incomplete.channel, units, incomplete, origin=PRIMARY)
