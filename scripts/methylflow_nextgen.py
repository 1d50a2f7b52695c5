#!/usr/bin/env python -Es
"""Run a bisulfite sequencing methylation analysis from a YAML run configuration.

Usage:
  methylflow_nextgen.py <run_config.yaml>
     -n number of concurrent workers
     --max-concurrent cap on external programs running at once
     --workdir / --outdir override the configured directories
     --demultiplex/--no-demultiplex, --trim/--no-trim, --indexed/--no-indexed
       override the configured stage toggles

Exit status is 0 when every mandatory branch succeeded, 1 otherwise.
"""
import argparse
import sys

from methylflow.pipeline import version
from methylflow.pipeline.config_utils import ConfigurationError
from methylflow.pipeline.main import run_main

def _add_toggle(parser, name, help):
    parser.add_argument("--%s" % name, dest=name, action="store_const", const=True, default=None,
                        help=help)
    parser.add_argument("--no-%s" % name, dest=name, action="store_const", const=False,
                        help=argparse.SUPPRESS)

def parse_cl_args(in_args):
    """Parse input commandline arguments into keyword arguments for run_main.
    """
    description = "Bisulfite sequencing methylation pipeline."
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("config_file", nargs="?",
                        help="YAML run configuration with references, inputs and toggles")
    parser.add_argument("-n", "--numcores", type=int, default=None,
                        help="Number of concurrent workers processing units")
    parser.add_argument("--max-concurrent", type=int, default=None,
                        help="Maximum number of external programs running at once")
    parser.add_argument("--workdir", help="Directory to process in, overrides `dirs: work`")
    parser.add_argument("--outdir", help="Directory for final outputs, overrides `dirs: outdir`")
    _add_toggle(parser, "demultiplex", "Split inputs by barcode (--no-demultiplex to disable)")
    _add_toggle(parser, "trim", "Trim adapters with trim_galore (--no-trim to disable)")
    _add_toggle(parser, "indexed", "Extract S<n> index IDs from file names (--no-indexed to disable)")
    parser.add_argument("-v", "--version", help="Print current version", action="store_true")
    args = parser.parse_args(in_args)
    if args.version:
        print(version.__version__)
        sys.exit(0)
    if not args.config_file:
        parser.error("Require a YAML run configuration file")
    for name in ["numcores", "max_concurrent"]:
        if getattr(args, name) is not None and getattr(args, name) < 1:
            parser.error("--%s must be a positive integer" % name.replace("_", "-"))
    return {"config_file": args.config_file,
            "workdir": args.workdir,
            "outdir": args.outdir,
            "num_cores": args.numcores,
            "max_concurrent": args.max_concurrent,
            "demultiplex": args.demultiplex,
            "trim": args.trim,
            "indexed": args.indexed}

def main(**kwargs):
    try:
        outcome = run_main(**kwargs)
    except ConfigurationError as e:
        sys.stderr.write("Configuration error: %s\n" % e)
        return 1
    return 0 if outcome.success else 1

if __name__ == "__main__":
    sys.exit(main(**parse_cl_args(sys.argv[1:])))
