# core/sizes.py
import re

_SEPARATORS_RE = re.compile(r"[- ]")


def normalize_size(label: str) -> str:
    """
    Canonical form of a size label: uppercase, hyphens and spaces removed.
      "l-r" -> "LR", "L R" -> "LR", "30-S" -> "30S"
    """
    return _SEPARATORS_RE.sub("", (label or "").upper())


def size_matches(label: str, size_filter: str) -> bool:
    """
    True when the normalized label equals the normalized filter or starts with it.

    A bare letter filter ("L") therefore matches compound labels ("L-R", "L-T").
    Prefix matching is loose on purpose: a numeric filter "30" also matches
    "30-R" and "30-S" without telling inseams apart.
    """
    wanted = normalize_size(size_filter)
    if not wanted:
        return False
    normalized = normalize_size(label)
    if normalized == wanted:
        return True
    return normalized.startswith(wanted)
