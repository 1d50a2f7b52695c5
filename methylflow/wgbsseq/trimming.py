"""Remove adapters and low quality ends from bisulfite reads with trim_galore.

https://www.bioinformatics.babraham.ac.uk/projects/trim_galore/
"""
import os

from methylflow.log import logger
from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage, strip_fastq_ext
from methylflow.wgbsseq import kits


class TrimGalore(Stage):
    """Trim a read pair, emitting the validated pair as one group.
    """
    program = "trim_galore"
    arity = 2
    emit_group = True

    def __init__(self, name="trim_galore", active=dd.get_trim):
        super(TrimGalore, self).__init__(name, active)

    def command(self, units, out_dir, config):
        kit = kits.get_kit(dd.get_kit(config))
        if kit:
            logger.info(f"{kit.name} specified, using clip settings: R1 5'-{kit.clip_r1_5}nt/--/{kit.clip_r1_3}nt-3', "
                        f"R2 5'-{kit.clip_r2_5}nt/--/{kit.clip_r2_3}nt-3'")
        # trim_galore actual cores used = 3x + 3 where x = value of the parameter (according to manual)
        tg_cores = max(int((config_utils.get_cores(self.program, config) - 3) / 3), 1)
        cmd = [config_utils.get_program(self.program, config)]
        cmd += config_utils.get_options(self.program, config)
        cmd += _get_clip_settings(kit)
        cmd += ["--cores", tg_cores, "--length", 30, "--quality", 30, "--gzip", "--paired",
                "-o", out_dir]
        return cmd + [u.files[0] for u in units]

    def outputs(self, units, out_dir, config):
        out = []
        for i, unit in enumerate(units):
            fname = os.path.join(out_dir, "%s_val_%s.fq.gz" % (strip_fastq_ext(unit.files[0]), i + 1))
            out.append(unit.evolve(name=os.path.basename(fname), files=(fname,), kind="reads"))
        return out

    def artifacts(self, units, out_dir, config):
        out = []
        for unit in units:
            fname = os.path.join(out_dir, "%s_trimming_report.txt" % os.path.basename(unit.files[0]))
            out.append(unit.evolve(name=os.path.basename(fname), files=(fname,), kind="log"))
        return out


def _get_clip_settings(kit):
    clip_settings = []
    if kit is None:
        return clip_settings
    if kit.clip_r1_5 > 0:
        clip_settings += ["--clip_r1", kit.clip_r1_5]
    if kit.clip_r2_5 > 0:
        clip_settings += ["--clip_r2", kit.clip_r2_5]
    if kit.clip_r1_3 > 0:
        clip_settings += ["--three_prime_clip_r1", kit.clip_r1_3]
    if kit.clip_r2_3 > 0:
        clip_settings += ["--three_prime_clip_r2", kit.clip_r2_3]
    return clip_settings
