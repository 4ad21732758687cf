import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from glab.atoms.atom import Atom, AtomNamespace, AtomOrigin, AtomTrace, magnitude_range, namespace_of
from glab.atoms.atom_id import AtomId
from glab.utils.math_utils import clamp, clamp01

logger = logging.getLogger(__name__)

MISSING_TRACE_NOTE = "missing-trace"


def sanitize_used_ids(atom_id: str, used: Iterable[str]) -> Tuple[str, ...]:
    """Drop empties, duplicates and the atom's own id while keeping first-seen order."""
    seen = set()
    out: List[str] = []
    for u in used or ():
        if not u or u == atom_id or u in seen:
            continue
        seen.add(u)
        out.append(u)
    return tuple(out)


def _finite_or_zero(x: Any) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def normalize_atom(raw: "Atom | Mapping[str, Any]", default_origin: AtomOrigin = AtomOrigin.DERIVED) -> Atom:
    """
    Canonicalize a single atom.

    Infers namespace, kind, subject and target from the id family, clamps magnitude and
    confidence into their declared ranges (non-finite values become 0), fills a default
    code and strips self references from the trace. A derived atom without any trace
    receives one with a ``missing-trace`` note so that it stays visible to validation.
    """
    data: Dict[str, Any] = raw.model_dump() if isinstance(raw, Atom) else dict(raw)
    atom_id = str(data.get("id") or "")

    ns = data.get("ns")
    ns = AtomNamespace(ns) if ns in AtomNamespace._value2member_map_ else namespace_of(atom_id)

    aid: Optional[AtomId] = AtomId.parse(atom_id) if atom_id else None
    kind = data.get("kind") or (aid.kind if aid else "")
    lo, hi = magnitude_range(ns, kind)

    origin = data.get("origin") or default_origin
    if origin not in AtomOrigin._value2member_map_:
        logger.warning(f"{atom_id}: unknown origin {origin!r}, using {AtomOrigin(default_origin).value}")
        origin = default_origin
    origin = AtomOrigin(origin)

    trace = data.get("trace")
    if isinstance(trace, AtomTrace):
        trace = trace.model_dump()
    if trace is not None:
        trace = AtomTrace(
            used_atom_ids=sanitize_used_ids(atom_id, trace.get("used_atom_ids", trace.get("usedAtomIds", ()))),
            notes=tuple(trace.get("notes", ())),
            parts=dict(trace.get("parts", {})),
        )
    elif origin == AtomOrigin.DERIVED:
        trace = AtomTrace(notes=(MISSING_TRACE_NOTE,))

    return Atom(
        id=atom_id,
        ns=ns,
        kind=kind,
        origin=origin,
        source=data.get("source") or "",
        magnitude=clamp(_finite_or_zero(data.get("magnitude", 0.0)), lo, hi),
        confidence=clamp01(_finite_or_zero(data.get("confidence", 1.0))),
        subject=data.get("subject") or (aid.subject if aid else None),
        target=data.get("target") or (aid.target if aid else None),
        code=data.get("code") or (f"{ns.value}.{kind}" if kind else ns.value),
        label=data.get("label") or "",
        tags=tuple(data.get("tags") or ()),
        trace=trace,
        meta=dict(data.get("meta") or {}),
    )


def normalize_atoms(atoms: Iterable["Atom | Mapping[str, Any]"], default_origin: AtomOrigin = AtomOrigin.DERIVED) -> Tuple[Atom, ...]:
    return tuple(normalize_atom(a, default_origin) for a in atoms)


def make_derived(
        atom_id: str,
        magnitude: float,
        used: Sequence[str],
        *,
        confidence: float = 1.0,
        parts: Optional[Dict[str, Any]] = None,
        notes: Sequence[str] = (),
        label: str = "",
        code: str = "",
        source: str = "",
        tags: Sequence[str] = (),
        meta: Optional[Dict[str, Any]] = None,
) -> Atom:
    """Constructor used by every derivation stage; ``used`` lists every id the value was read from."""
    return normalize_atom({
        "id": atom_id,
        "origin": AtomOrigin.DERIVED,
        "magnitude": magnitude,
        "confidence": confidence,
        "label": label,
        "code": code,
        "source": source,
        "tags": tags,
        "meta": meta or {},
        "trace": {"used_atom_ids": tuple(used), "notes": tuple(notes), "parts": parts or {}},
    })


def make_fact(
        atom_id: str,
        magnitude: float,
        origin: AtomOrigin = AtomOrigin.WORLD,
        *,
        confidence: float = 1.0,
        label: str = "",
        source: str = "",
        tags: Sequence[str] = (),
        meta: Optional[Dict[str, Any]] = None,
) -> Atom:
    """Constructor for source facts (world, obs, belief, override) that need no trace."""
    return normalize_atom({
        "id": atom_id,
        "origin": origin,
        "magnitude": magnitude,
        "confidence": confidence,
        "label": label,
        "source": source,
        "tags": tags,
        "meta": meta or {},
    })
