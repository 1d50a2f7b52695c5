"""High level summaries of QC artifacts from every stage, using MultiQC.

http://multiqc.info/
"""
import os

from methylflow.log import logger
from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage
from methylflow.pipeline.unit import Unit
from methylflow.upload import filesystem


class MultiQC(Stage):
    """Aggregate report over any number of QC and log artifacts.
    """
    program = "multiqc"
    arity = None

    def __init__(self, name="multiqc", **kwargs):
        super(MultiQC, self).__init__(name, **kwargs)

    def work_dir(self, units, config):
        return os.path.join(dd.get_work_dir(config), self.name)

    def command(self, units, out_dir, config):
        input_list_file = os.path.join(out_dir, "multiqc_inputs.txt")
        with open(input_list_file, "w") as out_handle:
            for f in _report_files(units):
                out_handle.write(f + "\n")
        cmd = [config_utils.get_program(self.program, config), "-f", "-l", input_list_file]
        cmd += config_utils.get_options(self.program, config)
        return cmd + ["-o", out_dir]

    def outputs(self, units, out_dir, config):
        out_file = os.path.join(out_dir, "multiqc_report.html")
        return [Unit(os.path.basename(out_file), (out_file, os.path.join(out_dir, "multiqc_data")),
                     kind="report")]


def _report_files(units):
    seen = set()
    out = []
    for unit in units:
        for f in unit.files:
            if f not in seen:
                seen.add(f)
                out.append(f)
    return out

def summary(units, config, limiter=None):
    """Run MultiQC over the collected artifacts of a run and publish the report.

    Returns the stage result, with the published report as its output.
    """
    stage = MultiQC()
    logger.info("Summarizing %s QC files with MultiQC" % len(_report_files(units)))
    result = stage.invoke(tuple(units), config, limiter)
    if not result.ok:
        return result
    published = [filesystem.publish(u, config) for u in result.outputs]
    return result._replace(outputs=tuple(published))
