"""Library preparation kits with known clipping requirements for bisulfite reads.
"""
from collections import namedtuple

Kit = namedtuple('Kit', 'name clip_r1_5 clip_r1_3 clip_r2_5 clip_r2_3 is_directional')

_KITS = [
    Kit("truseq", 8, 8, 8, 8, False),
    Kit("accelngs", 10, 10, 19, 5, True),
    Kit("nebemseq", 5, 5, 11, 5, True),
]

KITS = {x.name: x for x in _KITS}
SUPPORTED_KITS = {x.name for x in _KITS}


def get_kit(name):
    """Kit for a configured name, None when unset. Unknown names are an error.
    """
    if not name:
        return None
    if name.lower() not in KITS:
        raise ValueError("Unsupported library kit %s, expected one of: %s" %
                         (name, ", ".join(sorted(SUPPORTED_KITS))))
    return KITS[name.lower()]

def is_directional(kit, directional=True):
    return directional and (kit is None or kit.is_directional)
