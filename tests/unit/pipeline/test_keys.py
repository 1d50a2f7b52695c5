import re

import pytest

from methylflow.pipeline import keys
from methylflow.pipeline.keys import KeyExtractor, PatternMismatch
from methylflow.pipeline.unit import Key, DemuxKey, Unit


@pytest.mark.parametrize('name,expected', [
    ('ABC-xyz123S1_R1.fastq.gz', Key('ABC', 'index')),
    ('ABC-xyz123S1_R2.fastq.gz', Key('ABC', 'index')),
    ('/data/run1/ABC-xyz123S1_R1.fastq.gz', Key('ABC', 'index')),
    ('XY_R1.fq', Key('XY', 'index')),
    ('liver1_S3_L001_R1_001.fastq.gz', Key('liver1', 'index')),
])
def test_extracts_sample_with_default_index(name, expected):
    assert KeyExtractor().extract(name) == expected


@pytest.mark.parametrize('name,expected', [
    ('ABC-xyz123S1_R1.fastq.gz', Key('ABC', 'S1')),
    ('ABC-xyz123S12_R2.fastq.gz', Key('ABC', 'S12')),
    ('liver1_S3_L001_R1_001.fastq.gz', Key('liver1', 'S3')),
])
def test_extracts_index_when_indexed(name, expected):
    assert KeyExtractor(indexed=True).extract(name) == expected


def test_extraction_is_deterministic():
    extractor = KeyExtractor(indexed=True)
    name = 'ABC-xyz123S1_R1.fastq.gz'
    assert extractor(name) == extractor(name) == extractor.extract(name)


def test_mates_share_a_key():
    extractor = KeyExtractor(indexed=True)
    assert extractor('ABC-xyz123S1_R1.fastq.gz') == extractor('ABC-xyz123S1_R2.fastq.gz')


@pytest.mark.parametrize('name', ['weird.fastq', 'sampleA_R1.fastq.gz', '123_R1.fastq.gz', ''])
def test_unmatched_names_raise(name):
    with pytest.raises(PatternMismatch) as excinfo:
        KeyExtractor().extract(name)
    assert excinfo.value.name == name


def test_indexed_run_requires_index():
    with pytest.raises(PatternMismatch) as excinfo:
        KeyExtractor(indexed=True).extract('ABC-xyz_R1.fastq.gz')
    assert excinfo.value.expected == 'index ID'


def test_rules_are_tried_in_priority_order():
    first = keys.KeyRule('first', re.compile(r'^(?P<sample>\w{2})'), lambda m: m.group('sample'))
    extractor = KeyExtractor(rules=(first,) + keys.SAMPLE_RULES)
    assert extractor('ABC-xyz_R1.fastq.gz').sample == 'AB'


def test_extracts_demultiplexed_triplet():
    assert keys.extract_demultiplexed('sampleA_R1.fastq.GATCCA.fastq') == \
        DemuxKey('sampleA', 'index', 'GATCCA')
    assert keys.extract_demultiplexed('sampleA_R2.fastq.GATCCA.fastq') == \
        DemuxKey('sampleA', 'index', 'GATCCA')


def test_demultiplexed_index_segment():
    assert keys.extract_demultiplexed('ABC-S2_R1.fastq.ACGTAC.fastq') == DemuxKey('ABC', 'S2', 'ACGTAC')


@pytest.mark.parametrize('name', [
    'sampleA_R1.fastq.GATCC.fastq',
    'sampleA_R1.fastq.GATCCAA.fastq',
    'sampleA_R1.fastq.GATNCA.fastq',
    'sampleA_R1.fastq.unmatched.fastq',
    'sampleA.fastq',
])
def test_demultiplexed_shape_is_strict(name):
    with pytest.raises(PatternMismatch):
        keys.extract_demultiplexed(name)


@pytest.mark.parametrize('name,expected', [
    ('ABC-xyz123S1_R1.fastq.gz', 1),
    ('sampleA_R2.fastq.GATCCA.fastq', 2),
    ('ABC_val_2.fq.gz', 2),
    ('noise.fastq', None),
])
def test_mate(name, expected):
    assert keys.mate(name) == expected


def test_pair_mates_orders_read_one_first():
    r1, r2 = Unit("ABC-x_R1.fastq.gz"), Unit("ABC-x_R2.fastq.gz")
    assert keys.pair_mates([r2, r1]) == [r1, r2]


@pytest.mark.parametrize("names", [
    ["ABC-a_R1.fastq.gz", "ABC-b_R1.fastq.gz"],
    ["ABC-a_R1.fastq.gz", "ABC-a.fastq.gz"],
])
def test_pair_mates_requires_one_of_each(names):
    units = [Unit(n) for n in names]
    with pytest.raises(PatternMismatch) as excinfo:
        keys.pair_mates(units)
    assert excinfo.value.units == tuple(units)


def test_read_barcodes(tmp_path):
    fname = tmp_path / 'barcodes.txt'
    fname.write_text('# name seq\nbc1\tGATCCA\n\nACGTAC\nbc3 gatcca\n')
    assert keys.read_barcodes(str(fname)) == ['GATCCA', 'ACGTAC']


@pytest.mark.parametrize('content', ['bc1 GATCC\n', 'bc1 GATNCA\n', '\n# empty\n'])
def test_read_barcodes_rejects_bad_files(tmp_path, content):
    fname = tmp_path / 'barcodes.txt'
    fname.write_text(content)
    with pytest.raises(ValueError):
        keys.read_barcodes(str(fname))
