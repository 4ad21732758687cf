"""
Stage S5: appraisal and emotion.

Appraisals condense the context into seven readings (threat, uncertainty, control,
pressure, attachment, loss, goalBlock). Core emotions are products of those readings,
softly tilted by traits (``TRAIT_ALPHA`` of the value is trait modulated, the rest is
the raw appraisal product). ``emo:valence`` is the only signed atom, in -1..1. Dyadic
emotions scale by how close the other actually is.
"""
from typing import Dict, List

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import derived
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.tom.dyads import dyad_targets
from glab.utils.math_utils import clamp01, clamp11

TRAIT_ALPHA = 0.35


def derive_appraisals(index: AtomIndex, self_id: str) -> Dict[str, Atom]:
    r = index.reader()

    def ctx(m, fb=0.0):
        return r.mag(atom_id("ctx", metric=m, subject=self_id), fb)

    threat = r.mag(atom_id("threat", metric="final", subject=self_id), 0.0)
    unc = ctx("uncertainty")
    norm = ctx("normPressure")
    pub = ctx("publicness")
    intimacy = ctx("intimacy")
    cover = r.first([atom_id("world:map", metric="cover", subject=self_id), atom_id("ctx", metric="cover", subject=self_id)])
    escape = r.first([atom_id("world:map", metric="escape", subject=self_id), atom_id("ctx", metric="escape", subject=self_id)])
    grief = ctx("grief")
    pain = ctx("pain")
    tp = ctx("timePressure")
    scarcity = ctx("scarcity")
    used = r.take()

    values = {
        "threat": (clamp01(threat), {"threat": threat}),
        "uncertainty": (unc, {"unc": unc}),
        "control": (clamp01(0.45 * cover + 0.35 * escape + 0.20 * (1 - unc)), {"cover": cover, "escape": escape, "unc": unc}),
        "pressure": (clamp01(0.65 * norm + 0.35 * pub), {"norm": norm, "pub": pub}),
        "attachment": (clamp01(0.75 * intimacy + 0.25 * (1 - pub)), {"intimacy": intimacy, "pub": pub}),
        "loss": (clamp01(0.65 * grief + 0.35 * pain), {"grief": grief, "pain": pain}),
        "goalBlock": (clamp01(0.55 * tp + 0.45 * scarcity), {"tp": tp, "sc": scarcity}),
    }
    return {k: derived(atom_id("app", metric=k, subject=self_id), v, used, parts, source="emotion_appraisal",
                       notes=("derived appraisal",), tags=("appraisal", k))
            for k, (v, parts) in values.items()}


def derive_emotions(index: AtomIndex, self_id: str) -> List[Atom]:
    r = index.reader()

    def trait(name, fb):
        return clamp01(r.mag(atom_id("feat:char", subject=self_id, metric=f"trait.{name}"), fb))

    def app(name, fb=0.0):
        return r.mag(atom_id("app", metric=name, subject=self_id), fb)

    hpa = trait("hpaReactivity", 0.5)
    sens = trait("sensitivity", 0.5)
    care_t = trait("care", 0.4)
    safety_t = trait("safety", 0.5)
    power = trait("powerDrive", 0.4)
    norm_sens = trait("normSensitivity", 0.5)

    threat = app("threat")
    unc = app("uncertainty")
    control = app("control", 0.4)
    pressure = app("pressure")
    attachment = app("attachment")
    loss = app("loss")
    block = app("goalBlock")
    used = r.take()

    a = TRAIT_ALPHA

    def tilt(base, mod):
        return clamp01((1 - a) * base + a * mod)

    fear0 = clamp01(threat * (1 - control) * (0.5 + 0.5 * unc))
    anger0 = clamp01(threat * control * (1 - unc) * (1 - pressure))
    shame0 = clamp01(pressure * (0.6 + 0.4 * threat) * (1 - attachment))
    relief0 = clamp01((1 - threat) * control * (1 - block))
    resolve0 = clamp01(0.55 * control + 0.30 * anger0 + 0.15 * (1 - unc))
    care0 = clamp01(attachment * (0.65 + 0.35 * (1 - threat)))
    arousal0 = clamp01(0.60 * threat + 0.20 * unc + 0.20 * pressure)

    emo = {
        "fear": tilt(fear0, fear0 * (0.75 + 0.60 * hpa + 0.30 * sens + 0.25 * safety_t)),
        "anger": tilt(anger0, anger0 * (0.75 + 0.55 * power - 0.35 * norm_sens)),
        "shame": tilt(shame0, shame0 * (0.75 + 0.55 * norm_sens + 0.25 * sens)),
        "relief": tilt(relief0, relief0 * (0.85 + 0.20 * (1 - hpa))),
        "resolve": tilt(resolve0, resolve0 * (0.80 + 0.45 * power + 0.20 * safety_t) + 0.05 * (1 - sens)),
        "care": tilt(care0, care0 * (0.80 + 0.70 * care_t)),
        "arousal": tilt(arousal0, arousal0 * (0.80 + 0.70 * hpa + 0.25 * sens)),
    }
    base = {"fear": fear0, "anger": anger0, "shame": shame0, "relief": relief0, "resolve": resolve0,
            "care": care0, "arousal": arousal0}
    valence = clamp11((0.55 * emo["relief"] + 0.35 * emo["care"])
                      - (0.60 * emo["fear"] + 0.35 * emo["shame"] + 0.25 * emo["anger"] + 0.55 * loss))

    inputs = {"threat": threat, "unc": unc, "control": control, "pressure": pressure, "attachment": attachment,
              "loss": loss, "goalBlock": block}
    out = [derived(atom_id("emo", metric=k, subject=self_id), v, used,
                   {"base": base[k], "value": v, "alpha": a, **inputs}, source="emotion_core",
                   notes=("derived core emotion",), tags=("emo", k))
           for k, v in emo.items()]
    out.append(derived(atom_id("emo", metric="valence", subject=self_id), valence, used,
                       {"valence": valence, **{k: emo[k] for k in ("relief", "care", "fear", "shame", "anger")}, "loss": loss},
                       source="emotion_axes", notes=("derived affect axis",), label=f"valence:{round(valence * 100)}%",
                       tags=("emo", "axis", "valence")))
    return out


def derive_dyadic_emotions(index: AtomIndex, self_id: str) -> List[Atom]:
    control_id = atom_id("app", metric="control", subject=self_id)
    fear_id = atom_id("emo", metric="fear", subject=self_id)
    control = index.get_mag(control_id, 0.4)
    global_fear = index.get_mag(fear_id, 0.0)

    out: List[Atom] = []
    for other in dyad_targets(index, self_id):
        def eff(m, fb):
            return index.get_mag(atom_id("tom:effective:dyad", subject=self_id, target=other, metric=m), fb)

        near_id = atom_id("obs:nearby", subject=self_id, target=other)
        close = clamp01(index.get_mag(near_id, 0.0))
        trust, threat, support = eff("trust", 0.5), eff("threat", 0.0), eff("support", 0.0)
        respect, intimacy = eff("respect", 0.0), eff("intimacy", 0.0)

        used = [atom_id("tom:effective:dyad", subject=self_id, target=other, metric=m)
                for m in ("trust", "threat", "support", "respect", "intimacy")]
        used += [near_id, control_id, fear_id]

        values = {
            "fearOf": (close * threat * (1 - control) * (0.65 + 0.35 * global_fear),
                       {"close": close, "threat": threat, "control": control, "globalFear": global_fear}),
            "affinity": (close * trust * (1 - threat) * (0.55 + 0.45 * intimacy),
                         {"close": close, "trust": trust, "threat": threat, "intimacy": intimacy}),
            "hostility": (close * threat * (1 - trust), {"close": close, "threat": threat, "trust": trust}),
            "gratitude": (close * support * trust, {"close": close, "support": support, "trust": trust}),
            "respect": (close * respect, {"close": close, "respect": respect}),
        }
        for k, (v, parts) in values.items():
            v = clamp01(v)
            out.append(derived(atom_id("emo:dyad", metric=k, subject=self_id, target=other), v, used, parts,
                               source="emotion_dyadic", label=f"emo.{k}→{other}:{round(v * 100)}%",
                               tags=("emo", "dyad", k)))
    return out


def run_emotion(ctx: StageContext) -> StageOutput:
    apps = derive_appraisals(ctx.index, ctx.self_id)
    view = AtomIndex(ctx.index.atoms + tuple(apps.values()))
    emos = derive_emotions(view, ctx.self_id)
    view = AtomIndex(view.atoms + tuple(emos))
    dyadic = derive_dyadic_emotions(view, ctx.self_id)
    return StageOutput(tuple(apps.values()) + tuple(emos) + tuple(dyadic),
                       {"emotion": {a.aid.metric: a.magnitude for a in emos}})
