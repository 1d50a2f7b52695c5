"""Loads run configurations from .yaml files and expands environment variables.
"""
import copy
import os

import toolz as tz
import yaml

from methylflow import utils
from methylflow.pipeline import datadict as dd
from methylflow.pipeline import keys
from methylflow.pipeline.unit import ORIGINS, CONTROL_ORIGINS, PRIMARY
from methylflow.wgbsseq import kits


class ConfigurationError(ValueError):
    """A required run input is missing or unreachable; raised before any stage runs.
    """
    pass

# ## Retrieval functions

def load_config(config_file):
    """Load YAML config file, replacing environmental variables.
    """
    with open(config_file) as in_handle:
        config = yaml.safe_load(in_handle) or {}
    if not isinstance(config, dict):
        raise ConfigurationError("Run configuration %s is not a YAML mapping" % config_file)
    config = _expand_paths(config)
    for section in ["algorithm", "reference", "input", "dirs", "resources"]:
        if config.get(section) is None:
            config[section] = {}
    # lowercase resource names, the preferred way to specify, for back-compatibility
    newr = {}
    for k, v in config["resources"].items():
        if k.lower() != k:
            newr[k.lower()] = v
    config["resources"].update(newr)
    config["config_file"] = os.path.abspath(config_file)
    return config

def _expand_paths(config):
    for field, setting in config.items():
        if isinstance(config[field], dict):
            config[field] = _expand_paths(config[field])
        else:
            config[field] = expand_path(setting)
    return config

def expand_path(path):
    """ Combines os.path.expandvars with replacing ~ with $HOME.
    """
    try:
        return os.path.expandvars(path.replace("~", "$HOME"))
    except AttributeError:
        return path

def update_w_custom(config, overrides):
    """Apply command line algorithm and directory overrides, returning a new configuration.
    """
    config = copy.deepcopy(config)
    for path, val in overrides:
        if val is not None:
            config = tz.assoc_in(config, path, val)
    return config

def get_resources(name, config):
    """Retrieve resources for a program, pulling from multiple config sources.
    """
    return tz.get_in(["resources", name], config,
                     tz.get_in(["resources", "default"], config, {}))

def get_program(name, config, default=None):
    """Retrieve the command line used to call a program.

    The preferred location for program information is `resources`, either as a
    plain string or a dictionary with a `cmd` key.
    """
    pconfig = tz.get_in(["resources", name], config)
    if pconfig is None:
        cmd = default or name
    elif isinstance(pconfig, str):
        cmd = pconfig
    elif "cmd" in pconfig:
        cmd = pconfig["cmd"]
    else:
        cmd = default or name
    return expand_path(cmd)

def get_options(name, config):
    """Retrieve extra command line options for a program as a list of strings.
    """
    resources = get_resources(name, config)
    opts = resources.get("options", []) if isinstance(resources, dict) else []
    if isinstance(opts, str):
        opts = opts.split()
    return [str(x) for x in opts]

# ## Validation, run before building the processing graph

def validate_run_config(config, base_dir=None):
    """Check required inputs are set and reachable, resolving paths in place.

    Returns the list of input files matching the configured pattern. Raises
    ConfigurationError for anything which would make the run meaningless.
    """
    base_dir = base_dir or os.path.dirname(config.get("config_file", "")) or os.getcwd()
    for origin in ORIGINS:
        ref = dd.get_reference(config, origin)
        if ref:
            ref = utils.get_abspath(ref, base_dir)
            if not os.path.exists(ref):
                raise ConfigurationError("Reference for %s not found: %s" % (origin, ref))
            config["reference"][origin] = ref
        elif origin == PRIMARY:
            raise ConfigurationError("Primary reference is required: set `reference: primary:` "
                                     "to a bismark prepared genome directory")
    if dd.get_controls_required(config) and not any(dd.get_reference(config, x) for x in CONTROL_ORIGINS):
        raise ConfigurationError("controls_required is set but no control references are configured")
    pattern = dd.get_input_pattern(config)
    if not pattern:
        raise ConfigurationError("Input file pattern is required: set `input: pattern:`")
    in_files = utils.glob_inputs(pattern, base_dir)
    if not in_files:
        raise ConfigurationError("No input files match %s" % pattern)
    if dd.get_demultiplex(config):
        barcodes = dd.get_barcodes(config)
        if not barcodes:
            raise ConfigurationError("Demultiplexing requires a barcode file: set `input: barcodes:`")
        barcodes = utils.get_abspath(barcodes, base_dir)
        if not os.path.exists(barcodes):
            raise ConfigurationError("Barcode file not found: %s" % barcodes)
        try:
            keys.read_barcodes(barcodes)
        except ValueError as e:
            raise ConfigurationError(str(e))
        config["input"]["barcodes"] = barcodes
    try:
        kits.get_kit(dd.get_kit(config))
    except ValueError as e:
        raise ConfigurationError(str(e))
    for name, getter in [("num_cores", dd.get_num_cores), ("max_concurrent", dd.get_max_concurrent)]:
        try:
            val = int(getter(config))
        except (TypeError, ValueError):
            val = 0
        if val < 1:
            raise ConfigurationError("algorithm: %s must be a positive integer, got %r" %
                                     (name, getter(config)))
    config["dirs"]["work"] = utils.get_abspath(dd.get_work_dir(config), base_dir)
    config["dirs"]["outdir"] = utils.get_abspath(dd.get_outdir(config), base_dir)
    return in_files

def get_cores(name, config):
    """Threads a single invocation of a program may use, from `resources: <name>: cores`.
    """
    resources = get_resources(name, config)
    cores = resources.get("cores", 1) if isinstance(resources, dict) else 1
    return max(int(cores), 1)
