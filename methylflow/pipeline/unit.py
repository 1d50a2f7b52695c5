"""Units of data flowing between pipeline stages.

A Unit is an immutable, file backed item: a payload name, the files that make
it up and the metadata tags used to route and regroup it downstream. Stages
never modify a Unit; they produce new ones with `evolve`.
"""
import os
from collections import namedtuple

PRIMARY = "primary"
METHYLATED_CONTROL = "methylated_control"
UNMETHYLATED_CONTROL = "unmethylated_control"
NO_ORIGIN = "none"

ORIGINS = (PRIMARY, METHYLATED_CONTROL, UNMETHYLATED_CONTROL)
CONTROL_ORIGINS = (METHYLATED_CONTROL, UNMETHYLATED_CONTROL)
ALL_ORIGINS = ORIGINS + (NO_ORIGIN,)

KINDS = ("reads", "alignment", "methylation_calls", "cytosine_report",
         "qc", "report", "log")

# index ID used when a run is not configured as indexed
DEFAULT_INDEX = "index"

Key = namedtuple("Key", "sample index")
DemuxKey = namedtuple("DemuxKey", "sample index barcode")


class Unit(namedtuple("Unit", "name files sample index barcode origin kind")):
    __slots__ = ()

    def __new__(cls, name, files=None, sample=None, index=None, barcode=None,
                origin=NO_ORIGIN, kind="reads"):
        if origin not in ALL_ORIGINS:
            raise ValueError("Unexpected origin tag %r for %s" % (origin, name))
        if kind not in KINDS:
            raise ValueError("Unexpected artifact kind %r for %s" % (kind, name))
        files = tuple(files) if files else (name,)
        return super(Unit, cls).__new__(cls, name, files, sample, index, barcode, origin, kind)

    @property
    def key(self):
        return Key(self.sample, self.index)

    @property
    def group_key(self):
        return DemuxKey(self.sample, self.index, self.barcode)

    def evolve(self, **kwargs):
        return self._replace(**kwargs)

    def describe(self):
        parts = [str(x) for x in (self.sample, self.index, self.barcode) if x]
        label = "/".join(parts) if parts else self.name
        return label if self.origin == NO_ORIGIN else "%s (%s)" % (label, self.origin)


def from_file(fname, kind="reads", **tags):
    """Create a Unit for a single file, named by its basename.
    """
    return Unit(os.path.basename(fname), (fname,), kind=kind, **tags)


def as_units(item):
    """Normalize a channel item, a single Unit or a completed group, into a tuple.
    """
    if isinstance(item, Unit):
        return (item,)
    return tuple(item)
