from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from glab.atoms.atom import Atom
from glab.atoms.normalize import make_derived
from glab.utils.math_utils import clamp01

# (name, value, weight) or (name, value, weight, contribution)
PartEntry = Tuple


def build_parts(entries: Iterable[PartEntry], formula: Optional[str] = None) -> Dict[str, Any]:
    parts: Dict[str, Any] = {}
    for e in entries:
        name, val = e[0], float(e[1])
        w = e[2] if len(e) > 2 else None
        if len(e) > 3:
            contrib = e[3]
        else:
            contrib = val * w if w is not None else None
        parts[name] = {"val": val, "w": w, "contrib": contrib}
    if formula:
        parts["formula"] = formula
    return parts


def pct_label(name: str, value: float) -> str:
    return f"{name}:{round(clamp01(value) * 100)}%"


def derived(
        atom_id: str,
        value: float,
        used: Sequence[str],
        parts: Optional[Dict[str, Any]] = None,
        *,
        source: str,
        notes: Sequence[str] = (),
        label: Optional[str] = None,
        **kwargs,
) -> Atom:
    """``make_derived`` with a percentage label built from the metric segment."""
    if label is None:
        segs = atom_id.split(":")
        label = pct_label(segs[1] if len(segs) > 1 else atom_id, value)
    return make_derived(atom_id, value, used, parts=parts, notes=notes, label=label, source=source, **kwargs)
