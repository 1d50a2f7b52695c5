"""
functions to access the run configuration dictionary in a clearer way
"""

import toolz as tz

LOOKUPS = {
    "demultiplex": {"keys": ["algorithm", "demultiplex"], "default": False},
    "trim": {"keys": ["algorithm", "trim"], "default": True},
    "indexed": {"keys": ["algorithm", "indexed"], "default": False},
    "deduplicate": {"keys": ["algorithm", "deduplicate"], "default": True},
    "cytosine_report": {"keys": ["algorithm", "cytosine_report"], "default": True},
    "skip_fastqc": {"keys": ["algorithm", "skip_fastqc"], "default": False},
    "join_branches": {"keys": ["algorithm", "join_branches"], "default": False},
    "controls_required": {"keys": ["algorithm", "controls_required"], "default": False},
    "num_cores": {"keys": ["algorithm", "num_cores"], "default": 1},
    "max_concurrent": {"keys": ["algorithm", "max_concurrent"], "default": 1},
    "kit": {"keys": ["algorithm", "kit"]},
    "directional": {"keys": ["algorithm", "directional"], "default": True},
    "input_pattern": {"keys": ["input", "pattern"]},
    "barcodes": {"keys": ["input", "barcodes"]},
    "work_dir": {"keys": ["dirs", "work"], "default": "work"},
    "outdir": {"keys": ["dirs", "outdir"], "default": "results"},
    "tmp_dir": {"keys": ["resources", "tmp", "dir"]},
    "email": {"keys": ["email"]},
}

def get_reference(config, origin):
    """Reference location configured for an alignment origin, or None when unset.
    """
    return tz.get_in(["reference", origin], config)

def getter(keys, global_default=None, always_list=False):
    def lookup(config, default=None):
        default = global_default if default is None else default
        val = tz.get_in(keys, config, default)
        if val is None:
            val = default
        if always_list:
            if not val:
                val = []
            elif not isinstance(val, (list, tuple)): val = [val]
        return val
    return lookup

def setter(keys, checker):
    def update(config, value):
        if checker and not checker(value):
            raise ValueError("%s fails check %s." % (value, checker))
        return tz.update_in(config, keys, lambda x: value, default=value)
    return update

def is_setter(keys):
    def present(config):
        value = tz.get_in(keys, config)
        return True if value else False
    return present

"""
generate the getter and setter functions but don't override any explicitly
defined
"""
_g = globals()
for k, v in LOOKUPS.items():
    keys = v['keys']
    getter_fn = 'get_' + k
    if getter_fn not in _g:
        _g["get_" + k] = getter(keys, v.get('default', None), v.get("always_list", False))
    setter_fn = 'set_' + k
    if setter_fn not in _g:
        _g["set_" + k] = setter(keys, v.get('checker', None))
    is_setter_fn = "is_set_" + k
    if is_setter_fn not in _g:
        _g["is_set_" + k] = is_setter(keys)

def get_keys(lookup):
    """
    return the keys used to look up a function in the datadict
    """
    return tz.get_in((lookup, "keys"), LOOKUPS, None)
