import platform
import sys

import psutil as _ps

_NICE = {"low": 10, "normal": 0, "high": -10, "realtime": -20}


def apply_runtime(cfg_runtime, verbose: bool = False) -> bool:
    """Pin the process and set its priority. Failures are reported, not raised."""
    p = _ps.Process()
    pr = str(cfg_runtime.priority).lower()
    try:
        if cfg_runtime.cpu_affinity is not None and hasattr(p, "cpu_affinity"):
            p.cpu_affinity([int(cfg_runtime.cpu_affinity)])
        if platform.system() == "Windows":
            classes = {
                "low": _ps.IDLE_PRIORITY_CLASS,
                "normal": _ps.NORMAL_PRIORITY_CLASS,
                "high": _ps.HIGH_PRIORITY_CLASS,
                "realtime": _ps.REALTIME_PRIORITY_CLASS,
            }
            p.nice(classes.get(pr, _ps.NORMAL_PRIORITY_CLASS))
        elif pr != "normal":
            p.nice(_NICE.get(pr, 0))
    except (_ps.Error, OSError, ValueError) as e:
        print(f"[runtime] could not apply affinity/priority: {e}", file=sys.stderr)
        return False
    if verbose:
        print(f"[runtime] affinity={cfg_runtime.cpu_affinity} priority={pr}")
    return True
