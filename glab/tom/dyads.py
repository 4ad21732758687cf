"""
Effective dyads: what ``self`` currently believes about ``other``.

Three layers, in this order:

1. base value: the persisted ToM view (``tom:dyad``) when present, otherwise a prior from
   the relationship record (``rel:base``), otherwise a neutral constant;
2. recent events involving the pair nudge the value (help raises trust, attacks raise
   threat, ...), weighted down when ``self`` was the actor;
3. the character lens biases the reading: suspicion and social tension eat trust and
   push threat and uncertainty up.

The result is written to ``tom:effective:dyad:<self>:<other>:<metric>``; the persisted
``tom:dyad`` atoms are never rewritten.
"""
import logging
from typing import Dict, List, NamedTuple, Tuple

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import derived
from glab.utils.math_utils import clamp01

logger = logging.getLogger(__name__)

SOURCE = "tom_effective"

DYAD_METRICS: Tuple[str, ...] = (
    "trust", "threat", "support", "intimacy", "respect", "dominance", "alignment", "uncertainty",
)

REL_KEYS = ("closeness", "loyalty", "hostility", "dependency", "authority")

# event kind -> metric -> signed push; positive moves towards 1, negative towards 0
EVENT_EFFECTS: Dict[str, Dict[str, float]] = {
    "help": {"trust": 0.25, "support": 0.30, "alignment": 0.15},
    "attack": {"threat": 0.50, "trust": -0.40, "support": -0.20},
    "lie": {"trust": -0.35, "uncertainty": 0.20},
    "betrayal": {"trust": -0.50, "alignment": -0.30, "threat": 0.20},
    "shared_secret": {"intimacy": 0.25, "trust": 0.15},
    "talk": {"uncertainty": -0.15, "intimacy": 0.05},
    "apology": {"trust": 0.10, "threat": -0.10},
    "boundary": {"respect": 0.10, "intimacy": -0.05},
}

ACTOR_EVENT_WEIGHT = 0.3


def dyad_targets(index: AtomIndex, self_id: str) -> Tuple[str, ...]:
    """Everyone ``self`` has a ToM view, relationship, observation or recent event about."""
    out = set()
    for prefix in ("tom:dyad", "rel:base", "obs:nearby", "event:recent"):
        out.update(index.targets_of(prefix, self_id))
    return tuple(sorted(out))


def _rel_prior(metric: str, r: Dict[str, float], ctx_unc: float) -> float:
    if metric == "trust":
        return 0.45 + 0.30 * r["loyalty"] + 0.20 * r["closeness"] - 0.35 * r["hostility"]
    if metric == "threat":
        return 0.15 + 0.70 * r["hostility"] - 0.10 * r["closeness"]
    if metric == "support":
        return 0.20 + 0.40 * r["loyalty"] + 0.25 * r["closeness"] + 0.10 * r["dependency"] - 0.25 * r["hostility"]
    if metric == "intimacy":
        return 0.10 + 0.70 * r["closeness"]
    if metric == "respect":
        return 0.30 + 0.50 * r["authority"] + 0.10 * r["loyalty"] - 0.10 * r["hostility"]
    if metric == "dominance":
        return 0.25 + 0.55 * r["authority"] - 0.15 * r["dependency"]
    if metric == "alignment":
        return 0.35 + 0.35 * r["loyalty"] + 0.15 * r["closeness"] - 0.40 * r["hostility"]
    if metric == "uncertainty":
        return ctx_unc * (1.0 - 0.4 * r["closeness"])
    raise ValueError(f"unknown dyad metric {metric}")


class EffectiveDyad(NamedTuple):
    other_id: str
    base: Dict[str, float]
    values: Dict[str, float]
    bias: float
    used: Dict[str, List[str]]


def effective_dyad(index: AtomIndex, self_id: str, other_id: str) -> EffectiveDyad:
    ctx = lambda m, fb=0.0: index.get_mag(atom_id("ctx", metric=m, subject=self_id), fb)  # noqa: E731
    ctx_unc = ctx("uncertainty", 0.5)

    rel_ids = {k: atom_id("rel:base", subject=self_id, target=other_id, metric=k) for k in REL_KEYS}
    has_rel = any(i in index for i in rel_ids.values())
    rel = {k: index.get_mag(i, 0.0) for k, i in rel_ids.items()}

    base: Dict[str, float] = {}
    used: Dict[str, List[str]] = {}
    for m in DYAD_METRICS:
        tid = atom_id("tom:dyad", subject=self_id, target=other_id, metric=m)
        if tid in index:
            base[m] = index.get_mag(tid)
            used[m] = [tid]
        elif has_rel:
            base[m] = clamp01(_rel_prior(m, rel, ctx_unc))
            used[m] = [i for i in rel_ids.values() if i in index]
        else:
            base[m] = clamp01(_rel_prior(m, {k: 0.0 for k in REL_KEYS}, ctx_unc))
            # neutral prior: the absent relationship record is the input
            used[m] = list(rel_ids.values())
        if m == "uncertainty":
            used[m].append(atom_id("ctx", metric="uncertainty", subject=self_id))

    vals = dict(base)
    for kind in sorted(EVENT_EFFECTS):
        eid = atom_id("event:recent", metric=kind, subject=self_id, target=other_id)
        ev = index.get(eid)
        if ev is None:
            continue
        w = ev.magnitude * (ACTOR_EVENT_WEIGHT if ev.meta.get("role") == "actor" else 1.0)
        for m, push in EVENT_EFFECTS[kind].items():
            x = vals[m]
            vals[m] = clamp01(x + push * w * (1.0 - x) if push > 0 else x + push * w * x)
            used[m].append(eid)

    suspicion = index.get_mag(atom_id("lens", metric="suspicion", subject=self_id), 0.0)
    tension = clamp01(0.45 * ctx("publicness") + 0.35 * ctx("surveillance") + 0.20 * ctx("normPressure"))
    bias = clamp01(0.70 * suspicion + 0.30 * tension)
    lens_ids = [atom_id("lens", metric="suspicion", subject=self_id)] + \
        [atom_id("ctx", metric=m, subject=self_id) for m in ("publicness", "surveillance", "normPressure")]

    threat_pre = vals["threat"]
    vals["trust"] = clamp01(vals["trust"] * (1.0 - 0.65 * bias))
    vals["threat"] = clamp01(threat_pre + (1.0 - threat_pre) * 0.75 * bias)
    vals["uncertainty"] = clamp01(vals["uncertainty"] + (1.0 - vals["uncertainty"]) * 0.40 * bias)
    # support only survives to the extent the threat reading does
    factor = clamp01((1.0 - vals["threat"]) / max(1e-6, 1.0 - threat_pre))
    vals["support"] = clamp01(vals["support"] * factor)
    for m in ("trust", "threat", "uncertainty", "support"):
        used[m].extend(lens_ids)

    return EffectiveDyad(other_id, base, vals, bias, used)


def derive_effective_dyads(index: AtomIndex, self_id: str) -> List[Atom]:
    out: List[Atom] = []
    for other in dyad_targets(index, self_id):
        d = effective_dyad(index, self_id, other)
        for m in DYAD_METRICS:
            out.append(derived(
                atom_id("tom:effective:dyad", subject=self_id, target=other, metric=m),
                d.values[m],
                d.used[m],
                {"base": d.base[m], "eff": d.values[m], "bias": d.bias},
                source=SOURCE,
                notes=("effective dyad metric",),
                label=f"{m}_eff:{round(d.values[m] * 100)}%",
                tags=("tom", "effective", "dyad", m),
            ))
    return out
