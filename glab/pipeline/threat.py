"""
Stage S4: threat stack.

Six channels, each in 0..1, and a weighted final blend:

* env  - max of map danger, hazard and the (lensed) danger axis
* soc  - noisy-or over nearby agents of closeness * hostility * perception
* auth - control level and norm pressure
* unc  - the uncertainty axis
* body - max of fatigue, pain and stress
* sc   - crowd and urgency

Per-other contributions are emitted as ``threat:dyad:<self>:<other>``.
"""
from typing import Dict, List, Mapping, Optional

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import build_parts, derived
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01, noisy_or, weighted_mean

SOURCE = "threat"

DEFAULT_WEIGHTS: Dict[str, float] = {"env": 0.28, "soc": 0.28, "auth": 0.16, "unc": 0.12, "body": 0.10, "sc": 0.06}

SOCIAL_BASELINE_HOSTILITY = 0.40
SOCIAL_SHIELD_STRENGTH = 0.85
W_LOS = 0.6
W_AUDIO = 0.4


def derive_threat(index: AtomIndex, self_id: str, weights: Optional[Mapping[str, float]] = None) -> List[Atom]:
    w = dict(DEFAULT_WEIGHTS)
    w.update(weights or {})

    def sid(prefix, metric):
        return atom_id(prefix, metric=metric, subject=self_id)

    def feat(name):
        return atom_id("feat:char", subject=self_id, metric=name)

    g = index.get_mag
    out: List[Atom] = []

    env_ids = [sid("world:map", "danger"), sid("world:map", "hazard"), sid("ctx", "danger")]
    env_vals = [g(i, 0.0) for i in env_ids]
    t_env = clamp01(max(env_vals))
    out.append(derived(sid("threat", "env"), t_env, env_ids,
                       build_parts([("mapDanger", env_vals[0], 1.0), ("hazard", env_vals[1], 1.0), ("ctxDanger", env_vals[2], 1.0)],
                                   "env = max(mapDanger, hazard, ctxDanger)"), source=SOURCE))

    auth_ids = [sid("world:loc", "control_level"), sid("ctx", "normPressure")]
    loc_control, norm = g(auth_ids[0], 0.0), g(auth_ids[1], 0.0)
    t_auth = clamp01(weighted_mean([(loc_control, 0.60), (norm, 0.40)]))
    out.append(derived(sid("threat", "auth"), t_auth, auth_ids,
                       build_parts([("locControl", loc_control, 0.60), ("normPressure", norm, 0.40)],
                                   "auth = 0.60*locControl + 0.40*normPressure"), source=SOURCE))

    unc_id = sid("ctx", "uncertainty")
    t_unc = clamp01(g(unc_id, 0.5))
    out.append(derived(sid("threat", "unc"), t_unc, [unc_id], build_parts([("uncertainty", t_unc, 1.0)]), source=SOURCE))

    sc_ids = [sid("ctx", "crowd"), sid("scene", "urgency")]
    crowd, urgency = g(sc_ids[0], 0.0), g(sc_ids[1], 0.0)
    t_sc = clamp01(weighted_mean([(crowd, 0.55), (urgency, 0.45)]))
    out.append(derived(sid("threat", "sc"), t_sc, sc_ids,
                       build_parts([("crowd", crowd, 0.55), ("urgency", urgency, 0.45)], "sc = 0.55*crowd + 0.45*urgency"),
                       source=SOURCE))

    body_ids = [feat("body.fatigue"), feat("body.pain"), feat("body.stress")]
    body_vals = [g(i, 0.0) for i in body_ids]
    t_body = clamp01(max(body_vals))
    out.append(derived(sid("threat", "body"), t_body, body_ids,
                       build_parts([("fatigue", body_vals[0], 1.0), ("pain", body_vals[1], 1.0), ("stress", body_vals[2], 1.0)],
                                   "body = max(fatigue, pain, stress)"), source=SOURCE))

    soc_terms = []
    soc_used: List[str] = []
    soc_parts: Dict[str, float] = {}
    for other in index.targets_of("obs:nearby", self_id):
        near_id = atom_id("obs:nearby", subject=self_id, target=other)
        los_id = atom_id("obs:los", subject=self_id, target=other)
        aud_id = atom_id("obs:audio", subject=self_id, target=other)
        trust_id = atom_id("tom:effective:dyad", subject=self_id, target=other, metric="trust")
        close, los, aud = g(near_id, 0.0), g(los_id, 0.0), g(aud_id, 0.0)
        trust = g(trust_id, 0.45)
        hostility = clamp01(SOCIAL_BASELINE_HOSTILITY + (1.0 - trust) * SOCIAL_SHIELD_STRENGTH)
        percept = clamp01(W_LOS * los + W_AUDIO * aud)
        t = clamp01(close * hostility * percept)
        ids = [near_id, los_id, aud_id, trust_id]
        out.append(derived(atom_id("threat:dyad", subject=self_id, target=other), t, ids,
                           {"close": close, "hostility": hostility, "percept": percept, "trust": trust, "t": t},
                           source=SOURCE))
        soc_terms.append(t)
        soc_used.extend(ids)
        soc_parts[f"soc:{other}"] = t
    t_soc = noisy_or(soc_terms)
    soc_parts["formula"] = "noisy-or over nearby agents"
    # nobody nearby: the empty channel is explained by where the agent is
    out.append(derived(sid("threat", "soc"), t_soc, soc_used or [sid("world", "location")],
                       soc_parts, source=SOURCE))

    channels = {"env": t_env, "soc": t_soc, "auth": t_auth, "unc": t_unc, "body": t_body, "sc": t_sc}
    t_final = clamp01(weighted_mean([(channels[k], w[k]) for k in DEFAULT_WEIGHTS]))
    out.append(derived(sid("threat", "final"), t_final, [sid("threat", k) for k in DEFAULT_WEIGHTS],
                       build_parts([(f"T_{k}", channels[k], w[k]) for k in DEFAULT_WEIGHTS], "weighted threat blend"),
                       source=SOURCE))
    return out


def run_threat(ctx: StageContext) -> StageOutput:
    atoms = derive_threat(ctx.index, ctx.self_id)
    final = next(a for a in atoms if a.id == atom_id("threat", metric="final", subject=ctx.self_id))
    return StageOutput(tuple(atoms), {"threat": {"final": final.magnitude}})
