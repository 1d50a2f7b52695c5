"""Genome wide cytosine reports from methylation calls, run separately per origin.
"""
import os

from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage
from methylflow.utils import splitext_plus


class CytosineReport(Stage):
    """coverage2cytosine against the reference set matching the calls' origin.
    """
    program = "coverage2cytosine"
    publish = True

    def __init__(self, origin, name="cytosine_report", active=None):
        super(CytosineReport, self).__init__(name, active or self._is_active, origin)

    def _is_active(self, config):
        return bool(dd.get_cytosine_report(config) and dd.get_reference(config, self.origin))

    def command(self, units, out_dir, config):
        unit = units[0]
        if unit.origin != self.origin:
            raise ValueError("%s expects %s calls, got %s" % (self.name, self.origin, unit.describe()))
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        return cmd + ["--genome_folder", dd.get_reference(config, self.origin), "--gzip",
                      "--dir", out_dir, "-o", _stem(unit), unit.files[0]]

    def outputs(self, units, out_dir, config):
        out_file = os.path.join(out_dir, "%s.CpG_report.txt.gz" % _stem(units[0]))
        return [units[0].evolve(name=os.path.basename(out_file), files=(out_file,),
                                kind="cytosine_report")]


def _stem(unit):
    base = os.path.basename(unit.files[0])
    for ext in [".bismark.cov.gz", ".bismark.cov"]:
        if base.endswith(ext):
            return base[:-len(ext)]
    return splitext_plus(base)[0]
