"""
Drivers (needs) and energy channels.

Drivers condense context and emotion into seven needs. Energy channels are a compact
per-agent summary of the staged atoms in the signal field channels; they come in three
layers:

* raw   - straight from the atoms
* felt  - raw through the agent's response curve
* state - felt blended into the value carried over from the previous tick, at ``inertia``
  (0 keeps the old state, 1 follows felt instantly)

Only the ``state`` layer depends on history, and that history lives in the session.
"""
from typing import Dict, List, Mapping, NamedTuple, Tuple

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import build_parts, derived
from glab.signals.signal_field import KNOWN_CHANNELS
from glab.utils.math_utils import clamp01

DRIVER_CONFIDENCE = 0.9
BASE_ENERGY = 0.5


def derive_drivers(index: AtomIndex, self_id: str) -> List[Atom]:
    r = index.reader()

    def s(prefix, metric, fb=0.0):
        return r.mag(atom_id(prefix, metric=metric, subject=self_id), fb)

    danger = s("ctx", "danger")
    unc = s("ctx", "uncertainty")
    control = s("ctx", "control", 0.5)
    pub = s("ctx", "publicness")
    norm = s("ctx", "normPressure")
    novelty = s("ctx", "novelty")
    fear = s("emo", "fear")
    shame = s("emo", "shame")
    care = s("emo", "care")
    anger = s("emo", "anger")
    fatigue = r.first([atom_id("cap", metric="fatigue", subject=self_id),
                       atom_id("feat:char", subject=self_id, metric="body.fatigue")], 0.0)
    used = r.take()

    needs = {
        "safetyNeed": [("danger", danger, 0.6), ("fear", fear, 0.4)],
        "controlNeed": [("lackControl", 1.0 - control, 0.7), ("uncertainty", unc, 0.3)],
        "statusNeed": [("shame", shame, 0.5), ("publicness", pub, 0.25), ("normPressure", norm, 0.25)],
        "affiliationNeed": [("care", care, 0.7), ("safe", 1.0 - danger, 0.3)],
        "resolveNeed": [("anger", anger, 0.5), ("danger", danger, 0.5)],
        "restNeed": [("fatigue", fatigue, 1.0)],
        "curiosityNeed": [("novelty", novelty, 0.55), ("safeUncertainty", unc * (1.0 - danger), 0.45)],
    }
    out = []
    for need, terms in needs.items():
        value = clamp01(sum(v * w for _, v, w in terms))
        out.append(derived(atom_id("drv", metric=need, subject=self_id), value, used,
                           build_parts(terms, " + ".join(f"{w}*{n}" for n, _, w in terms)),
                           source="drivers", confidence=DRIVER_CONFIDENCE, tags=("drv", need)))
    return out


class EnergyChannels(NamedTuple):
    raw: Dict[str, float]
    felt: Dict[str, float]
    state: Dict[str, float]
    used: Tuple[str, ...]


def response_curve(raw: float, gain: float = 1.0) -> float:
    """Agent response curve around the midpoint; gain 1 is linear."""
    return clamp01(0.5 + (raw - 0.5) * gain)


def energy_channels(index: AtomIndex, self_id: str, prev_state: Mapping[str, float], inertia: float) -> EnergyChannels:
    r = index.reader()

    def s(prefix, metric, fb=0.0):
        return r.mag(atom_id(prefix, metric=metric, subject=self_id), fb)

    def feat(name, fb):
        return r.mag(atom_id("feat:char", subject=self_id, metric=name), fb)

    threat = s("threat", "final")
    unc = s("ctx", "uncertainty")
    norm = s("ctx", "normPressure")
    care = s("emo", "care")
    intimacy = s("ctx", "intimacy")
    fatigue = feat("body.fatigue", 0.3)
    reserve = feat("body.energy", 1.0 - fatigue)
    life_status = s("goal:lifeDomain", "status", 0.5)
    hierarchy = s("ctx", "hierarchy")
    life_explore = s("goal:lifeDomain", "exploration", 0.5)
    sensitivity = feat("trait.sensitivity", 0.5)
    used = tuple(r.take())

    raw = {
        "threat": clamp01(threat),
        "uncertainty": clamp01(unc),
        "norm": clamp01(norm),
        "attachment": clamp01(0.55 * care + 0.45 * intimacy),
        "resource": clamp01(0.55 * reserve + 0.45 * (1.0 - fatigue)),
        "status": clamp01(0.65 * life_status + 0.35 * hierarchy),
        "curiosity": clamp01(0.75 * life_explore + 0.25 * (1.0 - threat)),
        "base": BASE_ENERGY,
    }
    # sensitive characters feel the extremes more
    gain = 0.8 + 0.4 * clamp01(sensitivity)
    felt = {ch: response_curve(raw[ch], gain) for ch in KNOWN_CHANNELS}
    k = clamp01(inertia)
    state = {}
    for ch in KNOWN_CHANNELS:
        prev = prev_state.get(ch, felt[ch])
        state[ch] = clamp01(prev + k * (felt[ch] - prev))
    return EnergyChannels(raw, felt, state, used)


def energy_atoms(self_id: str, ch: EnergyChannels, prev_state: Mapping[str, float], inertia: float) -> List[Atom]:
    out = []
    for name in KNOWN_CHANNELS:
        raw, felt, state = ch.raw[name], ch.felt[name], ch.state[name]
        for layer, value, parts in (
                ("raw", raw, {"raw": raw, "ch": name}),
                ("felt", felt, {"raw": raw, "felt": felt, "ch": name}),
                ("state", state, {"raw": raw, "felt": felt, "inertia": inertia,
                                  "prev": prev_state.get(name, felt), "state": state, "ch": name}),
        ):
            out.append(derived(atom_id(f"ener:{layer}", metric=name, subject=self_id), value, ch.used, parts,
                               source="energy_channels", notes=("energy channel (raw/felt/state)",),
                               label=f"{layer}.{name}:{round(value * 100)}%", tags=("ener", layer, name)))
    return out
