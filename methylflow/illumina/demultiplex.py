"""Split pooled read pairs by inline barcode with fastq-multx.

Outputs are named <sample>[-<index>]_R<mate>.fastq.<barcode>.fastq so the
(sample, index, barcode) key of every split file is recoverable from its name.

https://github.com/brwnj/fastq-multx
"""
import os

from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.keys import read_barcodes
from methylflow.pipeline.stage import Stage, sample_label


class Demultiplex(Stage):
    program = "fastq-multx"
    arity = 2

    def __init__(self, name="demultiplex", active=dd.get_demultiplex):
        super(Demultiplex, self).__init__(name, active)

    def _template(self, units, out_dir, mate):
        return os.path.join(out_dir, "%s_R%s.fastq.%%.fastq" % (sample_label(units[0]), mate))

    def command(self, units, out_dir, config):
        barcodes = read_barcodes(dd.get_barcodes(config))
        barcode_file = os.path.join(out_dir, "barcodes.txt")
        with open(barcode_file, "w") as out_handle:
            for bc in barcodes:
                out_handle.write("%s\t%s\n" % (bc, bc))
        resources = config_utils.get_resources(self.program, config)
        mismatches = resources.get("bc_mismatch", 1) if isinstance(resources, dict) else 1
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        cmd += ["-B", barcode_file, "-m", mismatches, "-b", units[0].files[0], units[1].files[0]]
        return cmd + ["-o", self._template(units, out_dir, 1), "-o", self._template(units, out_dir, 2)]

    def outputs(self, units, out_dir, config):
        out = []
        for bc in read_barcodes(dd.get_barcodes(config)):
            for mate in (1, 2):
                fname = self._template(units, out_dir, mate).replace("%", bc)
                out.append(units[0].evolve(name=os.path.basename(fname), files=(fname,), barcode=bc))
        return out
