"""Call methylation from deduplicated Bismark alignments.
"""
import os

from methylflow.pipeline import config_utils
from methylflow.pipeline.stage import Stage


class MethylationExtract(Stage):
    """Run bismark_methylation_extractor on one alignment, or on every alignment
    of a joined (sample, index, barcode) group in a single call.

    Each input alignment yields a methylation calls unit with the coverage and
    bedGraph files, tagged with the origin of its alignment.
    """
    program = "bismark_methylation_extractor"
    arity = None
    publish = True

    def __init__(self, name="methylation_extract", **kwargs):
        super(MethylationExtract, self).__init__(name, **kwargs)

    def command(self, units, out_dir, config):
        cores = config_utils.get_cores(self.program, config)
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        cmd += ["--paired-end", "--no_overlap", "--comprehensive", "--merge_non_CpG",
                "--bedGraph", "--gzip", "--multicore", cores, "-o", out_dir]
        return cmd + [u.files[0] for u in units]

    def outputs(self, units, out_dir, config):
        out = []
        for unit in units:
            stem = _stem(unit)
            files = (os.path.join(out_dir, "%s.bismark.cov.gz" % stem),
                     os.path.join(out_dir, "%s.bedGraph.gz" % stem))
            out.append(unit.evolve(name=os.path.basename(files[0]), files=files,
                                   kind="methylation_calls"))
        return out

    def artifacts(self, units, out_dir, config):
        out = []
        for unit in units:
            stem = _stem(unit)
            for suffix, kind in [("_splitting_report.txt", "log"), (".M-bias.txt", "qc")]:
                fname = os.path.join(out_dir, stem + suffix)
                out.append(unit.evolve(name=os.path.basename(fname), files=(fname,), kind=kind))
        return out


def _stem(unit):
    return os.path.splitext(os.path.basename(unit.files[0]))[0]
