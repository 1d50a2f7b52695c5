"""Channels connecting pipeline stages.

A channel is an ordered, thread safe conduit of units between stages. Every
producer writing to a channel calls `close` when it is finished; consumers
iterate until all producers have closed. Channels can be wired together:

  - fan_out: replicate every unit to N downstream channels
  - merge: combine N upstream channels into one
  - branch: route each unit to one of several channels based on its tags

A GroupingChannel buffers units by key and only emits once a group is
complete, re-associating units which were split apart upstream.
"""
import collections
import queue
import threading

from methylflow.log import logger
from methylflow.pipeline.unit import as_units

# returned by collect_all when no units ever arrived
EMPTY = ()

_CLOSED = object()


class ChannelError(Exception):
    """Invalid channel wiring or use, such as pushing to a closed channel.
    """
    pass


class IncompleteGroup(Exception):
    """A grouping buffer still held a partial group when all producers finished.
    """
    def __init__(self, channel, key, units, size):
        self.channel = channel
        self.key = key
        self.units = tuple(units)
        self.size = size
        super(IncompleteGroup, self).__init__(
            "%s: dropping incomplete group %s with %s of %s members (%s)" %
            (channel, tuple(key), len(self.units), size, ", ".join(u.name for u in self.units)))


class Channel(object):
    """Multi-producer, multi-consumer FIFO channel of units.
    """
    def __init__(self, name, producers=1):
        self.name = name
        self._producers = producers
        self._lock = threading.RLock()
        self._queue = queue.Queue()
        self._targets = []
        self._history = []
        self._consumed = False
        self._closed = False
        if producers < 1:
            self._close_final()

    def __repr__(self):
        return "<%s %s>" % (self.__class__.__name__, self.name)

    @property
    def closed(self):
        return self._closed

    def push(self, item):
        """Add a unit, or a completed group of units, to the channel.
        """
        with self._lock:
            if self._closed:
                raise ChannelError("Cannot push to closed channel %s" % self.name)
            self._history.append(item)
            if self._targets:
                for target in self._targets:
                    target.push(item)
            else:
                self._queue.put(item)

    def close(self):
        """Signal that one producer has finished writing.
        """
        with self._lock:
            if self._closed:
                raise ChannelError("Channel %s closed more times than it has producers" % self.name)
            self._producers -= 1
            if self._producers <= 0:
                self._close_final()

    def _close_final(self):
        with self._lock:
            self._finalize()
            self._closed = True
            self._queue.put(_CLOSED)
            for target in self._targets:
                target.close()

    def _finalize(self):
        pass

    def subscribe(self, target):
        """Forward every unit, including those already pushed, to a downstream target.

        Targets are anything with `push` and `close`, normally another channel.
        """
        with self._lock:
            if self._consumed:
                raise ChannelError("Channel %s already has a direct consumer" % self.name)
            if not self._targets:
                self._queue = queue.Queue()
            self._targets.append(target)
            for item in self._history:
                target.push(item)
            if self._closed:
                target.close()
        return target

    def fan_out(self, n):
        """Return n independent channels which each receive every unit.
        """
        return [self.subscribe(Channel("%s.%s" % (self.name, i + 1))) for i in range(n)]

    def branch(self, selector, labels):
        """Route each unit to the channel for `selector(unit)`.

        Labels are exhaustive: a unit selecting a label outside `labels`
        raises ChannelError in the producer pushing it.
        """
        outs = collections.OrderedDict((label, Channel("%s.%s" % (self.name, label)))
                                       for label in labels)
        self.subscribe(_Router(self.name, selector, outs))
        return outs

    def __iter__(self):
        with self._lock:
            if self._targets:
                raise ChannelError("Channel %s forwards to other channels and cannot be consumed"
                                   % self.name)
            self._consumed = True
            q = self._queue
        while True:
            item = q.get()
            if item is _CLOSED:
                # leave the marker for any other consumers
                q.put(_CLOSED)
                return
            yield item

    def collect_all(self):
        """Wait for every producer to finish and return all units pushed.

        Groups are flattened into their member units. Returns EMPTY when no
        units arrived, which callers treat as nothing to do.
        """
        units = [u for item in self for u in as_units(item)]
        return units if units else EMPTY


class _Router(object):
    def __init__(self, name, selector, outs):
        self.name = name
        self.selector = selector
        self.outs = outs

    def push(self, item):
        label = self.selector(item)
        if label not in self.outs:
            raise ChannelError("%s: no branch for %r, expected one of %s" %
                               (self.name, label, ", ".join(self.outs)))
        self.outs[label].push(item)

    def close(self):
        for out in self.outs.values():
            out.close()


def merge(*sources, **kwargs):
    """Single channel receiving the units of all sources.

    Order within each source is preserved; there is no ordering between sources.
    """
    name = kwargs.get("name") or "+".join(s.name for s in sources)
    out = Channel(name, producers=len(sources))
    for source in sources:
        source.subscribe(out)
    return out


def group_key(unit):
    return unit.group_key


class GroupingChannel(Channel):
    """Collect units sharing a key, emitting each group once it has `size` members.

    Units are tagged with the sample, index and barcode of their key. A
    completed group is emitted as one tuple, ordered by unit name unless an
    `arrange` callable is given. `arrange` receives the completed members and
    returns them in emission order; errors it raises go to the pusher.
    """
    def __init__(self, name, size, key_fn=group_key, producers=1, arrange=None):
        self.size = size
        self.key_fn = key_fn
        self.arrange = arrange or _by_name
        self.incomplete = []
        self._pending = collections.OrderedDict()
        self._guard = threading.Lock()
        self._key_locks = collections.defaultdict(threading.Lock)
        super(GroupingChannel, self).__init__(name, producers)

    def push(self, unit):
        if self._closed:
            raise ChannelError("Cannot push to closed channel %s" % self.name)
        key = self.key_fn(unit)
        unit = _tag(unit, key)
        with self._key_lock(key):
            with self._guard:
                group = self._pending.setdefault(key, [])
                group.append(unit)
                complete = len(group) >= self.size
                if complete:
                    del self._pending[key]
            if complete:
                super(GroupingChannel, self).push(tuple(self.arrange(group)))

    def _key_lock(self, key):
        with self._guard:
            return self._key_locks[key]

    def pending(self):
        with self._guard:
            return dict((k, tuple(v)) for k, v in self._pending.items())

    def _finalize(self):
        with self._guard:
            for key, units in self._pending.items():
                err = IncompleteGroup(self.name, key, units, self.size)
                logger.warning(str(err))
                self.incomplete.append(err)
            self._pending.clear()


def _tag(unit, key):
    tags = {}
    for field in ["sample", "index", "barcode"]:
        if hasattr(key, field):
            tags[field] = getattr(key, field)
    return unit.evolve(**tags) if tags else unit

def _by_name(units):
    return sorted(units, key=lambda u: u.name)
