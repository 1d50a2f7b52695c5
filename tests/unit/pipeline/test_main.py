import os

import pytest
import yaml

from methylflow.pipeline import config_utils
from methylflow.pipeline import main, stage
from methylflow.pipeline.keys import PatternMismatch
from methylflow.pipeline.stage import SUCCEEDED, CLOSED
from methylflow.provenance.do import ExternalToolFailure


@pytest.fixture
def commands(mocker):
    """Replace external programs with one that writes every expected output."""
    calls = []

    def fake_run(cmd, descr=None, data=None, checks=None, log_stdout=False, env=None, cwd=None):
        calls.append([str(x) for x in cmd])
        for check in checks or []:
            os.makedirs(os.path.dirname(check.target), exist_ok=True)
            with open(check.target, "w") as out_handle:
                out_handle.write("x")

    mocker.patch("methylflow.pipeline.stage.do.run", side_effect=fake_run)
    return calls


@pytest.fixture
def inputs(run_config, touch):
    fastq_dir = os.path.join(os.path.dirname(run_config["dirs"]["work"]), "fastq")
    return touch(os.path.join(fastq_dir, "ABC-xyz123S1_R1.fastq.gz"),
                 os.path.join(fastq_dir, "ABC-xyz123S1_R2.fastq.gz"))


def _programs(commands, name):
    return [c for c in commands if os.path.basename(c[0]) == name]


def _run(config):
    in_files = config_utils.validate_run_config(config)
    return main.methylseq_graph(config, in_files).run()


def test_paired_files_run_end_to_end(run_config, inputs, commands):
    outcome = _run(run_config)
    assert outcome.success, outcome.failures
    assert set(outcome.states.values()) == {SUCCEEDED, CLOSED}
    assert outcome.states["demultiplex"] == CLOSED
    trim = _programs(commands, "trim_galore")
    assert len(trim) == 1
    assert trim[0][-2:] == inputs
    report, = outcome.results["primary"]
    assert (report.sample, report.index, report.origin) == ("ABC", "index", "primary")
    assert report.name == "ABC.primary_pe.deduplicated.CpG_report.txt.gz"
    outdir = run_config["dirs"]["outdir"]
    assert os.path.exists(os.path.join(outdir, "methylation", "ABC", report.name))
    assert os.path.exists(os.path.join(outdir, "methylation", "ABC",
                                       "ABC.primary_pe.deduplicated.bismark.cov.gz"))
    assert os.path.exists(os.path.join(outdir, "qc", "multiqc_report.html"))
    assert len(_programs(commands, "multiqc")) == 1
    report_names = set(u.name for u in outcome.reports)
    assert "ABC-xyz123S1_R1_fastqc" in report_names
    assert "ABC.primary_PE_report.txt" in report_names


def test_demultiplexed_untrimmed_reads_reach_alignment(run_config, inputs, commands, touch):
    barcodes, = touch(os.path.join(os.path.dirname(inputs[0]), "barcodes.txt"),
                      content="bc1 GATCCA\nbc2 ACGTAC\n")
    run_config["algorithm"].update({"demultiplex": True, "trim": False})
    run_config["input"]["barcodes"] = barcodes
    outcome = _run(run_config)
    assert outcome.success, outcome.failures
    assert outcome.states["trim_galore"] == CLOSED
    assert not _programs(commands, "trim_galore")
    aligned = _programs(commands, "bismark")
    assert len(aligned) == 2
    mates = sorted(os.path.basename(c[c.index("-1") + 1]) for c in aligned)
    assert mates == ["ABC_R1.fastq.ACGTAC.fastq", "ABC_R1.fastq.GATCCA.fastq"]
    reports = outcome.results["primary"]
    assert sorted(u.barcode for u in reports) == ["ACGTAC", "GATCCA"]
    assert set(u.sample for u in reports) == {"ABC"}


def test_unmatched_input_is_one_failure(run_config, inputs, commands, touch):
    touch(os.path.join(os.path.dirname(inputs[0]), "weird.fastq.gz"))
    outcome = _run(run_config)
    assert len(outcome.failures) == 1
    assert outcome.failures[0].names == ("weird.fastq.gz",)
    assert len(outcome.results["primary"]) == 1


@pytest.mark.parametrize("join,extract_calls", [(False, 2), (True, 1)])
def test_alignment_branches(run_config, inputs, commands, join, extract_calls):
    control = os.path.join(os.path.dirname(run_config["dirs"]["work"]), "lambda")
    os.makedirs(control)
    run_config["reference"]["methylated_control"] = control
    run_config["algorithm"]["join_branches"] = join
    outcome = _run(run_config)
    assert outcome.success, outcome.failures
    assert sorted(n for n in outcome.states if n.startswith("bismark")) == [
        "bismark:methylated_control", "bismark:primary"]
    assert len(_programs(commands, "bismark_methylation_extractor")) == extract_calls
    coverage = _programs(commands, "coverage2cytosine")
    assert sorted(c[c.index("--genome_folder") + 1] for c in coverage) == sorted(
        [control, run_config["reference"]["primary"]])
    assert [u.origin for u in outcome.results["methylated_control"]] == ["methylated_control"]
    assert os.path.isdir(os.path.join(run_config["dirs"]["outdir"], "controls", "methylated", "ABC"))


def test_skipped_cytosine_reports_keep_calls(run_config, inputs, commands):
    run_config["algorithm"]["cytosine_report"] = False
    outcome = _run(run_config)
    assert not _programs(commands, "coverage2cytosine")
    assert [u.kind for u in outcome.results["primary"]] == ["methylation_calls"]


def test_run_main_writes_summary(run_config, inputs, commands, work_dir):
    config_file = os.path.join(work_dir, "run.yaml")
    with open(config_file, "w") as out_handle:
        yaml.safe_dump(run_config, out_handle)
    outcome = main.run_main(config_file, num_cores=3, trim=False)
    assert outcome.success
    assert not _programs(commands, "trim_galore")
    summary_file = os.path.join(run_config["dirs"]["outdir"], "pipeline_info", "run_summary.yaml")
    with open(summary_file) as in_handle:
        info = yaml.safe_load(in_handle)
    assert info["success"] is True
    assert info["failed_branches"] == 0
    assert os.path.exists(os.path.join(run_config["dirs"]["work"], "log", "methylflow.log"))


def test_run_main_rejects_missing_reference(run_config, inputs, work_dir):
    run_config["reference"]["primary"] = os.path.join(work_dir, "missing")
    config_file = os.path.join(work_dir, "run.yaml")
    with open(config_file, "w") as out_handle:
        yaml.safe_dump(run_config, out_handle)
    with pytest.raises(config_utils.ConfigurationError):
        main.run_main(config_file)


def test_joined_branches_fail_when_a_control_alignment_fails(run_config, inputs, commands):
    control = os.path.join(os.path.dirname(run_config["dirs"]["work"]), "lambda")
    os.makedirs(control)
    run_config["reference"]["methylated_control"] = control
    run_config["algorithm"]["join_branches"] = True
    write_outputs = stage.do.run.side_effect

    def control_fails(cmd, *args, **kwargs):
        if os.path.basename(str(cmd[0])) == "bismark" and control in cmd:
            raise ExternalToolFailure(cmd, 1, "index not built")
        return write_outputs(cmd, *args, **kwargs)

    stage.do.run.side_effect = control_fails
    outcome = _run(run_config)
    assert not outcome.success
    assert sorted((f.stage, f.origin) for f in outcome.failures) == [
        ("bismark:methylated_control", "methylated_control"), ("joined_alignments", "primary")]
    assert outcome.results["primary"] == ()
    assert not _programs(commands, "bismark_methylation_extractor")


def test_mates_are_paired_by_read_number(run_config, commands, touch):
    fastq_dir = os.path.join(os.path.dirname(run_config["dirs"]["work"]), "fastq")
    touch(os.path.join(fastq_dir, "ABC-a_R1.fastq.gz"), os.path.join(fastq_dir, "ABC-b_R1.fastq.gz"),
          os.path.join(fastq_dir, "DEF-a_R2.fastq.gz"), os.path.join(fastq_dir, "DEF-a_R1.fastq.gz"))
    outcome = _run(run_config)
    assert not outcome.success
    failure, = outcome.failures
    assert isinstance(failure.error, PatternMismatch)
    assert failure.names == ("ABC-a_R1.fastq.gz", "ABC-b_R1.fastq.gz")
    aligned, = _programs(commands, "bismark")
    assert os.path.basename(aligned[aligned.index("-1") + 1]).startswith("DEF-a_R1")
    assert os.path.basename(aligned[aligned.index("-2") + 1]).startswith("DEF-a_R2")
