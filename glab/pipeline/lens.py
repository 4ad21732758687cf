"""
Stage S2: character lens.

The lens leaves world and observation facts alone and re-derives the subjective context
axes the later stages feed on. Each axis is pushed away from 0.5 by a trait dependent
gain, so a paranoid character reads the same room as more dangerous than a seasoned one.
A rewritten axis keeps the inputs of the axis it replaces, never its own id.
"""
from typing import Dict, List, NamedTuple

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import derived
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01

SOURCE = "character_lens"


def amplify(x: float, k: float) -> float:
    """Stretch the distance from 0.5 by ``k``; k=1 is the identity."""
    return clamp01(0.5 + (x - 0.5) * k)


class LensProfile(NamedTuple):
    paranoia: float
    sensitivity: float
    experience: float
    stress: float
    fatigue: float
    suspicion: float
    gains: Dict[str, float]
    before: Dict[str, float]
    after: Dict[str, float]


def lens_profile(index: AtomIndex, self_id: str) -> LensProfile:
    def feat(name, fb):
        return index.get_mag(atom_id("feat:char", subject=self_id, metric=name), fb)

    def ctx(name, fb=0.0):
        return index.get_mag(atom_id("ctx", metric=name, subject=self_id), fb)

    paranoia = feat("trait.paranoia", 0.5)
    sensitivity = feat("trait.sensitivity", 0.5)
    experience = feat("trait.experience", 0.2)
    stress = feat("body.stress", 0.3)
    fatigue = feat("body.fatigue", 0.3)

    before = {
        "danger": ctx("danger"),
        "uncertainty": ctx("uncertainty"),
        "normPressure": ctx("normPressure"),
        "publicness": ctx("publicness"),
        "surveillance": ctx("surveillance", index.get_mag(atom_id("world:loc", metric="control_level", subject=self_id), 0.0)),
        "crowd": ctx("crowd"),
        "intimacy": ctx("intimacy"),
    }
    suspicion = clamp01(0.55 * paranoia + 0.20 * stress + 0.15 * before["surveillance"] + 0.10 * before["danger"])

    gains = {
        "danger": 1.0 + 1.2 * (paranoia - 0.5) + 0.6 * (stress - 0.5),
        "uncertainty": 1.0 + 0.8 * (0.5 - experience) + 0.5 * (fatigue - 0.5),
        "normPressure": 1.0 + 1.4 * (sensitivity - 0.5) + 0.4 * (before["publicness"] - 0.5),
        "publicness": 1.0 + 0.8 * (sensitivity - 0.5),
        "surveillance": 1.0 + 1.1 * (paranoia - 0.5),
        "crowd": 1.0 + 0.7 * (stress - 0.5) + 0.7 * (paranoia - 0.5),
        "intimacy": 1.0 - 0.9 * (paranoia - 0.5) - 0.4 * (before["danger"] - 0.5),
    }
    after = {k: amplify(before[k], gains[k]) for k in before}
    return LensProfile(paranoia, sensitivity, experience, stress, fatigue, suspicion, gains, before, after)


def apply_character_lens(index: AtomIndex, self_id: str) -> List[Atom]:
    p = lens_profile(index, self_id)
    lens_inputs = [atom_id("feat:char", subject=self_id, metric=m)
                   for m in ("trait.paranoia", "trait.sensitivity", "trait.experience", "body.stress", "body.fatigue")]

    out: List[Atom] = []
    for axis in sorted(p.after):
        aid = atom_id("ctx", metric=axis, subject=self_id)
        prior = index.get(aid)
        # the replaced axis is gone after the stage barrier, so inherit its inputs
        used = list(prior.used_ids if prior is not None else ()) + lens_inputs
        out.append(derived(aid, p.after[axis], used, {
            "before": p.before[axis],
            "k": p.gains[axis],
            "after": p.after[axis],
            "formula": "clamp01(0.5 + (x - 0.5) * k)",
        }, source=SOURCE, notes=("subjective lens override",), tags=("ctx", "lens", axis)))

    out.append(derived(atom_id("lens", metric="suspicion", subject=self_id), p.suspicion,
                       lens_inputs + [atom_id("ctx", metric="surveillance", subject=self_id),
                                      atom_id("ctx", metric="danger", subject=self_id)],
                       {"paranoia": p.paranoia, "stress": p.stress, "surveillance": p.before["surveillance"],
                        "danger": p.before["danger"], "suspicion": p.suspicion,
                        "formula": "0.55*paranoia + 0.20*stress + 0.15*surveillance + 0.10*danger"},
                       source=SOURCE, notes=("suspicion aggregate",)))
    return out


def run_lens(ctx: StageContext) -> StageOutput:
    atoms = apply_character_lens(ctx.index, ctx.self_id)
    p = lens_profile(ctx.index, ctx.self_id)
    return StageOutput(tuple(atoms), {"lens": {"suspicion": p.suspicion, **{f"{k}_after": v for k, v in p.after.items()}}})
