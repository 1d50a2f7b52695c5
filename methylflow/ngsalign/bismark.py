"""Bisulfite aware alignment with Bismark, against one of the run's reference sets.

https://github.com/FelixKrueger/Bismark
"""
import os

from methylflow.log import logger
from methylflow.pipeline import config_utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import Stage, sample_label
from methylflow.wgbsseq import kits


def reference_active(origin):
    """Activation predicate: a branch runs only when its reference is configured.
    """
    def active(config):
        return bool(dd.get_reference(config, origin))
    return active


class BismarkAlign(Stage):
    """Align a read pair against the reference set of a single origin.

    Instances differ only by origin, which selects the reference location
    and tags every output.
    """
    program = "bismark"
    arity = 2

    def __init__(self, origin, name="bismark", active=None):
        super(BismarkAlign, self).__init__(name, active or reference_active(origin), origin)

    def basename(self, units):
        return "%s.%s" % (sample_label(units[0]), self.origin)

    def command(self, units, out_dir, config):
        resources = config_utils.get_resources(self.program, config)
        instances = resources.get("bismark_threads") if isinstance(resources, dict) else None
        if not instances:
            instances = calculate_bismark_instances(config_utils.get_cores(self.program, config),
                                                    _memory_gb(resources))
        bowtie_threads = resources.get("bowtie_threads", 2) if isinstance(resources, dict) else 2
        other_opts = config_utils.get_options(self.program, config)
        directional = directional_opts(dd.get_kit(config), dd.get_directional(config), other_opts)
        other_opts = [x for x in other_opts if x != "--non_directional"]
        cmd = [config_utils.get_program(self.program, config)] + other_opts + directional
        cmd += ["--bowtie2", "--temp_dir", out_dir, "--parallel", instances, "-p", bowtie_threads,
                "-o", out_dir, "--basename", self.basename(units),
                "--genome", dd.get_reference(config, self.origin)]
        return cmd + ["-1", units[0].files[0], "-2", units[1].files[0]]

    def outputs(self, units, out_dir, config):
        out_file = os.path.join(out_dir, "%s_pe.bam" % self.basename(units))
        return [units[0].evolve(name=os.path.basename(out_file), files=(out_file,),
                                origin=self.origin, kind="alignment")]

    def artifacts(self, units, out_dir, config):
        report = os.path.join(out_dir, "%s_PE_report.txt" % self.basename(units))
        return [units[0].evolve(name=os.path.basename(report), files=(report,),
                                origin=self.origin, kind="log")]


def directional_opts(kit_name, directional, other_opts):
    """Library directionality flag from the kit and configuration, honouring a
    --non_directional set in resource options.
    """
    if kits.is_directional(kits.get_kit(kit_name), directional):
        if "--non_directional" not in other_opts:
            return []
        logger.info("Directional setting in the kit != setting in the resources, using --non_directional")
    return ["--non_directional"]

def _memory_gb(resources):
    memory = resources.get("memory", "1G") if isinstance(resources, dict) else "1G"
    memory = str(memory).upper()
    if memory.endswith("M"):
        return float(memory[:-1]) / 1024.0
    return float(memory.rstrip("G"))

def calculate_bismark_instances(cores, memory):
    """
    calculate number of parallel bismark instances to run, based on disussion here
    https://github.com/FelixKrueger/Bismark/issues/96
    cores and memory here are the maximum amounts available for us to use
    """
    BISMARK_CORES = 1
    BOWTIE_CORES_PER_INSTANCE = 2
    SAMTOOLS_CORES_PER_INSTANCE = 1
    CORES_PER_INSTANCE = BOWTIE_CORES_PER_INSTANCE + SAMTOOLS_CORES_PER_INSTANCE
    GENOME_MEMORY_GB = 12
    INSTANCE_MEMORY_GB = 10

    available_instance_memory = memory - GENOME_MEMORY_GB
    instances_in_memory = max(available_instance_memory / INSTANCE_MEMORY_GB, 1)

    available_instance_cores = cores - BISMARK_CORES
    instances_in_cores = max(available_instance_cores / CORES_PER_INSTANCE, 1)
    instances = int(min(instances_in_memory, instances_in_cores))
    logger.debug(f"{cores} cores and {memory}G memory are available. Spinning up {instances} instances of bismark.")
    return instances
