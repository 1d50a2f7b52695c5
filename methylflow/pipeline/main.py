"""Main entry point for bisulfite sequencing methylation runs.

Builds the processing graph from the run configuration and drives it to
completion:

  raw pairs -> [demultiplex -> barcode pairs] -> fastqc
                                              -> [trim] -> bismark x origins
  -> [deduplicate] -> [join by sample] -> methylation extraction
  -> per origin cytosine reports -> multiqc over all QC artifacts
"""
import os

from methylflow import log, utils
from methylflow.distributed.graph import Graph
from methylflow.illumina.demultiplex import Demultiplex
from methylflow.log import logger, DEFAULT_LOG_DIR
from methylflow.ngsalign.bismark import BismarkAlign
from methylflow.pipeline import config_utils, keys, summary
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.unit import ORIGINS, from_file
from methylflow.qc import multiqc
from methylflow.qc.fastqc import FastQC
from methylflow.wgbsseq.cytosine import CytosineReport
from methylflow.wgbsseq.deduplication import Deduplicate
from methylflow.wgbsseq.extraction import MethylationExtract
from methylflow.wgbsseq.trimming import TrimGalore


def run_main(config_file, workdir=None, outdir=None, num_cores=None, max_concurrent=None,
             demultiplex=None, trim=None, indexed=None):
    """Run a methylation analysis, handling command line overrides.

    Returns the RunOutcome. Raises ConfigurationError before anything runs
    when required inputs are missing.
    """
    config = config_utils.load_config(config_file)
    config = config_utils.update_w_custom(config, [
        (dd.get_keys("work_dir"), workdir),
        (dd.get_keys("outdir"), outdir),
        (dd.get_keys("num_cores"), num_cores),
        (dd.get_keys("max_concurrent"), max_concurrent),
        (dd.get_keys("demultiplex"), demultiplex),
        (dd.get_keys("trim"), trim),
        (dd.get_keys("indexed"), indexed)])
    in_files = config_utils.validate_run_config(config)
    work_dir = utils.safe_makedir(dd.get_work_dir(config))
    if config.get("log_dir", None) is None:
        config["log_dir"] = os.path.join(work_dir, DEFAULT_LOG_DIR)
    handler = log.setup_local_logging(config)
    try:
        logger.info(f"Run YAML configuration: {config['config_file']}.")
        logger.info("Processing %s input files from %s" % (len(in_files), dd.get_input_pattern(config)))
        outcome = methylseq_graph(config, in_files).run()
        for line in summary.human_summary(outcome).splitlines():
            (logger.info if outcome.success else logger.error)(line)
        summary.notify(outcome, config)
    finally:
        handler.pop_application()
        handler.close()
    return outcome

def methylseq_graph(config, in_files, reporter=multiqc.summary):
    """Wire the bisulfite sequencing topology for a validated configuration.
    """
    graph = Graph(config, reporter=reporter)
    extractor = keys.KeyExtractor(indexed=dd.get_indexed(config))
    raw = graph.grouping("raw_pairs", 2, key_fn=lambda u: extractor(u.name),
                         arrange=keys.pair_mates)
    graph.seed(raw, [from_file(f) for f in in_files])

    pairs = graph.add(Demultiplex(), raw,
                      output=graph.grouping("barcode_pairs", 2, key_fn=_demultiplexed_key,
                                             arrange=keys.pair_mates))
    graph.add(FastQC(), pairs)
    reads = graph.add(TrimGalore(), pairs)

    aligners = [BismarkAlign(origin) for origin in ORIGINS]
    aligners = [x for x in aligners if x.is_active(config)]
    aligned = [graph.add(aligner, branch_reads)
               for aligner, branch_reads in zip(aligners, reads.fan_out(len(aligners)))]
    merged = graph.add(Deduplicate(), graph.merge(*aligned, name="aligned"))
    if dd.get_join_branches(config) and len(aligners) > 1:
        merged = merged.subscribe(graph.grouping("joined_alignments", len(aligners)))

    calls = graph.add(MethylationExtract(), merged)
    for origin, origin_calls in calls.branch(_origin, [x.origin for x in aligners]).items():
        graph.terminal(graph.add(CytosineReport(origin), origin_calls), origin)
    return graph

def _demultiplexed_key(unit):
    return keys.extract_demultiplexed(unit.name)

def _origin(unit):
    return unit.origin
