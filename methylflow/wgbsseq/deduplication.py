import os

from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage


class Deduplicate(Stage):
    """Remove alignments to the same position in the genome from the Bismark
    mapping output using deduplicate_bismark
    """
    program = "deduplicate_bismark"

    def __init__(self, name="deduplicate", active=dd.get_deduplicate):
        super(Deduplicate, self).__init__(name, active)

    def command(self, units, out_dir, config):
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        return cmd + ["--paired", "--bam", "--output_dir", out_dir, units[0].files[0]]

    def outputs(self, units, out_dir, config):
        out_file = os.path.join(out_dir, "%s.deduplicated.bam" % _stem(units[0]))
        return [units[0].evolve(name=os.path.basename(out_file), files=(out_file,))]

    def artifacts(self, units, out_dir, config):
        report = os.path.join(out_dir, "%s.deduplication_report.txt" % _stem(units[0]))
        return [units[0].evolve(name=os.path.basename(report), files=(report,), kind="log")]


def _stem(unit):
    return os.path.splitext(os.path.basename(unit.files[0]))[0]
