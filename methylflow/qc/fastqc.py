"""Run FastQC on read pairs, producing per-file reports for the final summary.

http://www.bioinformatics.babraham.ac.uk/projects/fastqc/
"""
import os

from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage, strip_fastq_ext


def _qc_active(config):
    return not dd.get_skip_fastqc(config)


class FastQC(Stage):
    program = "fastqc"
    arity = 2

    def __init__(self, name="fastqc", active=_qc_active):
        super(FastQC, self).__init__(name, active)

    def command(self, units, out_dir, config):
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        cmd += ["--quiet", "-t", config_utils.get_cores(self.program, config), "-d", out_dir, "-o", out_dir]
        return cmd + [u.files[0] for u in units]

    def artifacts(self, units, out_dir, config):
        out = []
        for unit in units:
            base = os.path.join(out_dir, "%s_fastqc" % strip_fastq_ext(unit.files[0]))
            out.append(unit.evolve(name=os.path.basename(base), files=(base + ".html", base + ".zip"),
                                   kind="qc"))
        return out
