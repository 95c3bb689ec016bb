# src/utils/utils.py
import numpy as np
import os
import json

# --------------------------- math -------------------------

def _safe_norm(v: np.ndarray, axis=1, keepdims=True, eps=1e-15):
    n = np.linalg.norm(v, axis=axis, keepdims=keepdims)
    # Clamp very small norms up to eps so downstream division never sees 0
    return np.where(n < eps, eps, n)

def _safe_div(v: np.ndarray, n: np.ndarray, eps=1e-15):
    # Replace tiny denominators by 1.0 to avoid huge values / NaNs.
    n = np.where(n < eps, 1.0, n)
    return v / n

# ---------------------------- env parsing --------------------------------

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

def parse_bool(value: str) -> bool:
    """
    Parses a boolean flag as found in environment files.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"Not a boolean flag: {value!r}")

def parse_float_list(value: str) -> list[float]:
    """Parses a comma-separated list of floats, ignoring blanks."""
    return [float(x) for x in value.split(",") if x.strip()]

def default_workers() -> int:
    return max(1, (os.cpu_count() or 4) - 1)

# ---------------------------- I/O --------------------------------

def write_json(out: str, dictionary: dict, name = ""):
    """
    Writes a dictionary as pretty-printed JSON, or print it to stdout.

    Parameters
    ----------
    out : str
        Output file path. If falsy (e.g., ""), the JSON is printed instead.
    dictionary : dict
        Serializable mapping to store.
    name : str, optional
        Human-readable name used in the success message.
    """
    if out:
        os.makedirs(os.path.dirname(out) or ".", exist_ok=True)
        with open(out, "w", encoding="utf-8") as f:
            json.dump(dictionary, f, ensure_ascii=False, indent=2)
        print(f"Wrote {name} JSON to {out}")
    else:
        print(json.dumps(dictionary, ensure_ascii=False, indent=2))

# --------------------- Pretty Strings ----------------------------

def human_int(n: int) -> str:
    """
    Converts an integer into a compact human-readable string.

    Examples
    --------
    10_000_000 -> "10M"
    1_000_000  -> "1M"
    120_000    -> "120k"
    999        -> "999"

    Parameters
    ----------
    n : int
        Integer to format.

    Returns
    -------
    str
        Human-readable representation with suffix ('k', 'M', 'B') when applicable.
    """
    for suffix, factor in (("B", 10**9), ("M", 10**6), ("k", 10**3)):
        if abs(n) >= factor:
            return f"{int(n // factor)}{suffix}"
    return str(n)
