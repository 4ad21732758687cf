from typing import Any, Dict, List, NamedTuple, Tuple

from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.utils.math_utils import clamp01

GOAL_DOMAINS: Tuple[str, ...] = (
    "safety",
    "control",
    "affiliation",
    "status",
    "exploration",
    "order",
    "rest",
    "wealth",
)

LIFE_NEUTRAL = 0.5


class DomainScore(NamedTuple):
    domain: str
    value: float
    used: List[str]
    parts: Dict[str, Any]


def derive_domain_scores(index: AtomIndex, self_id: str) -> Dict[str, DomainScore]:
    """
    Goal pressure per domain from drivers, context axes and life goal weights.
    Missing drivers count as 0 and missing life weights as neutral 0.5.
    """
    def mag(prefix, metric, fb):
        aid = atom_id(prefix, metric=metric, subject=self_id)
        return index.get_mag(aid, fb), aid

    danger, danger_id = mag("ctx", "danger", 0.0)
    control, control_id = mag("ctx", "control", 0.0)
    pub, pub_id = mag("ctx", "publicness", 0.0)
    norm, norm_id = mag("ctx", "normPressure", 0.0)
    unc, unc_id = mag("ctx", "uncertainty", 0.0)
    scarcity, scarcity_id = mag("ctx", "scarcity", 0.0)

    fatigue_ids = [atom_id("cap", metric="fatigue", subject=self_id),
                   atom_id("feat:char", subject=self_id, metric="body.fatigue")]
    fatigue, fatigue_hit = index.first_mag(fatigue_ids, 0.0)

    drv = {}
    for need in ("safetyNeed", "controlNeed", "affiliationNeed", "statusNeed", "restNeed", "curiosityNeed"):
        drv[need] = mag("drv", need, 0.0)

    life = {d: mag("goal:lifeDomain", d, LIFE_NEUTRAL) for d in GOAL_DOMAINS}

    common = [danger_id, control_id, unc_id, norm_id, fatigue_hit or fatigue_ids[0]]
    out: Dict[str, DomainScore] = {}

    def put(domain, value, extra_used, parts):
        out[domain] = DomainScore(domain, clamp01(value), common + extra_used, parts)

    base = clamp01(0.60 * danger + 0.40 * drv["safetyNeed"][0])
    put("safety", 0.55 * base + 0.45 * life["safety"][0], [drv["safetyNeed"][1], life["safety"][1]],
        {"danger": danger, "drvSafety": drv["safetyNeed"][0], "lifeSafety": life["safety"][0], "base": base})

    lack = clamp01(1.0 - control)
    base = clamp01(0.60 * lack + 0.40 * drv["controlNeed"][0])
    put("control", 0.55 * base + 0.45 * life["order"][0], [drv["controlNeed"][1], life["order"][1]],
        {"lackControl": lack, "drvControl": drv["controlNeed"][0], "lifeOrder": life["order"][0], "base": base})

    base = clamp01(0.55 * drv["affiliationNeed"][0] + 0.45 * (1.0 - danger))
    put("affiliation", 0.55 * base + 0.45 * life["affiliation"][0], [drv["affiliationNeed"][1], life["affiliation"][1]],
        {"drvAff": drv["affiliationNeed"][0], "danger": danger, "lifeAff": life["affiliation"][0], "base": base})

    base = clamp01(0.55 * clamp01(pub + norm) + 0.45 * drv["statusNeed"][0])
    put("status", 0.55 * base + 0.45 * life["status"][0], [pub_id, drv["statusNeed"][1], life["status"][1]],
        {"publicness": pub, "normPressure": norm, "drvStatus": drv["statusNeed"][0], "lifeStatus": life["status"][0], "base": base})

    base = clamp01(0.55 * unc + 0.45 * drv["curiosityNeed"][0])
    put("exploration", 0.55 * base + 0.45 * life["exploration"][0], [drv["curiosityNeed"][1], life["exploration"][1]],
        {"uncertainty": unc, "drvCur": drv["curiosityNeed"][0], "lifeExplore": life["exploration"][0], "base": base})

    put("order", 0.60 * control + 0.40 * life["order"][0], [life["order"][1]],
        {"control": control, "lifeOrder": life["order"][0]})

    put("rest", 0.60 * fatigue + 0.40 * drv["restNeed"][0], [drv["restNeed"][1]],
        {"fatigue": fatigue, "drvRest": drv["restNeed"][0]})

    # no economy signals yet: 0.30 baseline moved by scarcity
    put("wealth", 0.30 + 0.45 * (scarcity - 0.3) + 0.25 * (life["wealth"][0] - LIFE_NEUTRAL), [scarcity_id, life["wealth"][1]],
        {"scarcity": scarcity, "lifeWealth": life["wealth"][0]})

    return out
