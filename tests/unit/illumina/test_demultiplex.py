import os

from methylflow.illumina.demultiplex import Demultiplex
from methylflow.pipeline import keys
from methylflow.pipeline.unit import Unit


def _config(touch, tmp_path):
    barcodes, = touch(str(tmp_path / "barcodes.txt"), content="s1 gatcca\nACGTAC\n\n# done\n")
    return {"algorithm": {"demultiplex": True}, "input": {"barcodes": barcodes}, "resources": {}}


PAIR = (Unit("ABC_S1_R1.fastq.gz", ("/data/ABC_S1_R1.fastq.gz",), sample="ABC", index="S1"),
        Unit("ABC_S1_R2.fastq.gz", ("/data/ABC_S1_R2.fastq.gz",), sample="ABC", index="S1"))


def test_demultiplex_command_writes_barcodes(touch, tmp_path):
    config = _config(touch, tmp_path)
    out_dir = str(tmp_path / "tx")
    os.makedirs(out_dir)
    cmd = Demultiplex().command(PAIR, out_dir, config)
    assert cmd[0] == "fastq-multx"
    assert cmd[cmd.index("-m") + 1] == 1
    assert cmd[cmd.index("-b") + 1:cmd.index("-b") + 3] == [PAIR[0].files[0], PAIR[1].files[0]]
    assert cmd[-1] == os.path.join(out_dir, "ABC-S1_R2.fastq.%.fastq")
    with open(os.path.join(out_dir, "barcodes.txt")) as in_handle:
        assert in_handle.read() == "GATCCA\tGATCCA\nACGTAC\tACGTAC\n"


def test_demultiplex_outputs_per_barcode_and_mate(touch, tmp_path):
    outputs = Demultiplex().outputs(PAIR, "/out", _config(touch, tmp_path))
    assert [u.name for u in outputs] == ["ABC-S1_R1.fastq.GATCCA.fastq", "ABC-S1_R2.fastq.GATCCA.fastq",
                                         "ABC-S1_R1.fastq.ACGTAC.fastq", "ABC-S1_R2.fastq.ACGTAC.fastq"]
    assert set(u.barcode for u in outputs) == {"GATCCA", "ACGTAC"}
    for unit in outputs:
        assert keys.extract_demultiplexed(unit.name) == unit.group_key


def test_demultiplex_mismatches_from_resources(touch, tmp_path):
    config = _config(touch, tmp_path)
    config["resources"]["fastq-multx"] = {"bc_mismatch": 0}
    out_dir = str(tmp_path / "tx")
    os.makedirs(out_dir)
    cmd = Demultiplex().command(PAIR, out_dir, config)
    assert cmd[cmd.index("-m") + 1] == 0


def test_demultiplex_off_by_default():
    assert not Demultiplex().is_active({})


def test_barcode_file_in_output_dir_is_read_before_writing(touch, tmp_path):
    config = _config(touch, tmp_path)
    config["input"]["barcodes"] = touch(str(tmp_path / "barcodes.txt"), content="bc1 GATCCA\n")[0]
    Demultiplex().command(PAIR, str(tmp_path), config)
    with open(str(tmp_path / "barcodes.txt")) as in_handle:
        assert in_handle.read() == "GATCCA\tGATCCA\n"
