"""Derive sample and index keys from sequencing file names.

Keys are the only link between units which were split apart (mate pairs,
demultiplexed barcodes, sibling alignments) and need to be brought back
together, so extraction is strict: a name which does not match any rule is an
error rather than a best guess.
"""
import os
import re
from collections import namedtuple

from methylflow.pipeline.unit import Key, DemuxKey, DEFAULT_INDEX


class PatternMismatch(ValueError):
    """A file name does not have the shape needed to extract its key.
    """
    def __init__(self, name, expected, units=()):
        self.name = name
        self.expected = expected
        self.units = tuple(units)
        super(PatternMismatch, self).__init__(
            "Could not extract %s from file name %s" % (expected, name))


KeyRule = namedtuple("KeyRule", "name pattern build")

def _group(name):
    return lambda m: m.group(name)

SAMPLE_RULES = (
    # ABC-xyz123S1_R1.fastq.gz: leading uppercase run followed by a delimiter
    KeyRule("uppercase_prefix", re.compile(r"^(?P<sample>[A-Z]+)[-_.]"), _group("sample")),
    # bcl2fastq: sample_S1_L001_R1_001.fastq.gz
    KeyRule("bcl2fastq", re.compile(r"^(?P<sample>[A-Za-z0-9-]+?)_S\d+_L\d{3}_R[12]_001\.f(ast)?q(\.gz)?$"),
            _group("sample")),
)

INDEX_RULES = (
    KeyRule("index_segment", re.compile(r"(?P<index>S\d+)(_L\d{3})?_R[12][._]"), _group("index")),
)

DEMUX_PATTERN = re.compile(r"^(?P<sample>[^_]+?)(-(?P<index>S\d+))?_R(?P<mate>[12])"
                           r"\.fastq\.(?P<barcode>[ACGT]{6})\.fastq$")

MATE_PATTERN = re.compile(r"_R?(?P<mate>[12])([._]|$)")


class KeyExtractor(object):
    """Apply prioritized pattern rules to recover the (sample, index) key of a file.
    """
    def __init__(self, rules=SAMPLE_RULES, index_rules=INDEX_RULES, indexed=False):
        self.rules = tuple(rules)
        self.index_rules = tuple(index_rules)
        self.indexed = indexed

    def extract(self, name):
        name = os.path.basename(name)
        sample = _apply(self.rules, name)
        if sample is None:
            raise PatternMismatch(name, "sample ID")
        if self.indexed:
            index = _apply(self.index_rules, name)
            if index is None:
                raise PatternMismatch(name, "index ID")
        else:
            index = DEFAULT_INDEX
        return Key(sample, index)

    __call__ = extract

def _apply(rules, name):
    for rule in rules:
        m = rule.pattern.search(name)
        if m:
            return rule.build(m)
    return None

def extract_demultiplexed(name):
    """Recover the (sample, index, barcode) triplet from a demultiplexed output file.

    Expects names like sampleA_R1.fastq.GATCCA.fastq, with an optional -S<n>
    index segment after the sample.
    """
    name = os.path.basename(name)
    m = DEMUX_PATTERN.search(name)
    if not m:
        raise PatternMismatch(name, "demultiplexed sample and barcode")
    return DemuxKey(m.group("sample"), m.group("index") or DEFAULT_INDEX, m.group("barcode"))

def mate(name):
    """Mate number (1 or 2) of a paired read file, None when there is no marker.
    """
    m = MATE_PATTERN.search(os.path.basename(name))
    return int(m.group("mate")) if m else None

def pair_mates(units):
    """Order a completed pair as (read 1, read 2).

    Raises PatternMismatch, carrying both units, unless the pair holds exactly
    one read 1 and one read 2 file.
    """
    if len(units) != 2 or set(mate(u.name) for u in units) != {1, 2}:
        names = ", ".join(u.name for u in units)
        raise PatternMismatch(names, "one read 1 and one read 2 mate", units)
    return sorted(units, key=lambda u: mate(u.name))

BARCODE_PATTERN = re.compile(r"^[ACGT]{6}$")

def read_barcodes(fname):
    """Barcode sequences from a barcode file, one per line with an optional name column.

    Lines are `sequence` or `name<whitespace>sequence`; blank lines and `#`
    comments are ignored. Raises ValueError for sequences that could not be
    recovered from demultiplexed file names.
    """
    barcodes = []
    with open(fname) as in_handle:
        for line in in_handle:
            parts = line.split("#")[0].split()
            if not parts:
                continue
            seq = parts[-1].upper()
            if not BARCODE_PATTERN.match(seq):
                raise ValueError("%s: barcode %s is not 6 bases of A, C, G or T" % (fname, parts[-1]))
            if seq not in barcodes:
                barcodes.append(seq)
    if not barcodes:
        raise ValueError("No barcodes found in %s" % fname)
    return barcodes
