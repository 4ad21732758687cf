"""
ToM policy layer.

* System-2 intensity is an approximate value of information against a time pressure
  cost: ``S2 = sigmoid(6 * (uncertainty * stakes - timePressure))``.
* Beliefs about the other (helps, harms, tells the truth) are updated in log-odds space,
  ``logit(post) = logit(prior) + precision * evidence``, priors from the relationship,
  evidence from centred effective dyad metrics, precision rising with S2.
* Eight candidate actions get an expected utility from explicit outcome probabilities
  times context dependent utilities; a softmax whose temperature falls as S2 rises turns
  them into a policy.

Every intermediate value ends up in the emitted atoms' ``trace.parts``.
"""
import logging
import math
from typing import Dict, List, NamedTuple, Tuple

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import derived
from glab.tom.dyads import DYAD_METRICS, REL_KEYS
from glab.utils.math_utils import binary_entropy, centered, clamp01, entropy01, inv_logit, logit, sigmoid, softmax

logger = logging.getLogger(__name__)

SOURCE = "tom_policy"

S2_GAIN = 6.0
S2_LABEL_THRESHOLD = 0.55
TAU_BASE = 0.70
TAU_S2_SLOPE = 0.45
TAU_FLOOR = 0.15

ACTIONS: Tuple[str, ...] = (
    "assist", "share_info", "negotiate", "monitor", "avoid", "set_boundary", "confront", "defer",
)
PROSOCIAL = ("assist", "share_info", "negotiate")

CTX_KEYS = ("danger", "crowd", "publicness", "surveillance", "normPressure", "uncertainty")


class ModeEstimate(NamedTuple):
    s2: float
    stakes: float
    time_pressure: float
    voi: float
    ctx: Dict[str, float]

    @property
    def label(self) -> str:
        return "System-2" if self.s2 >= S2_LABEL_THRESHOLD else "System-1"


def policy_temperature(s2: float) -> float:
    return max(TAU_FLOOR, TAU_BASE - TAU_S2_SLOPE * clamp01(s2))


def estimate_mode(index: AtomIndex, self_id: str) -> ModeEstimate:
    c = {k: clamp01(index.get_mag(atom_id("ctx", metric=k, subject=self_id), 0.0)) for k in CTX_KEYS}
    stakes = clamp01(0.55 * c["danger"] + 0.20 * c["surveillance"] + 0.15 * c["publicness"] + 0.10 * c["normPressure"])
    time_pressure = clamp01(0.55 * c["danger"] + 0.30 * c["crowd"] + 0.15 * c["normPressure"])
    voi = clamp01(c["uncertainty"] * stakes)
    s2 = clamp01(sigmoid(S2_GAIN * (voi - time_pressure)))
    return ModeEstimate(s2, stakes, time_pressure, voi, c)


class DyadPolicy(NamedTuple):
    other_id: str
    precision: float
    priors: Dict[str, float]
    evidence: Dict[str, float]
    posteriors: Dict[str, float]
    attitudes: Dict[str, float]
    eu: Dict[str, float]
    tau: float
    pi: Dict[str, float]

    @property
    def willingness(self) -> float:
        return clamp01(sum(self.pi[a] for a in PROSOCIAL))


def dyad_policy(index: AtomIndex, self_id: str, other_id: str, mode: ModeEstimate) -> DyadPolicy:
    c = mode.ctx
    danger, crowd, pub, surv, norm = c["danger"], c["crowd"], c["publicness"], c["surveillance"], c["normPressure"]
    s2, stakes = mode.s2, mode.stakes

    def eff(m, fb=0.0):
        return clamp01(index.get_mag(atom_id("tom:effective:dyad", subject=self_id, target=other_id, metric=m), fb))

    def rel(k):
        return clamp01(index.get_mag(atom_id("rel:base", subject=self_id, target=other_id, metric=k), 0.0))

    trust, threat, support = eff("trust"), eff("threat"), eff("support")
    intimacy, respect, dominance, alignment = eff("intimacy"), eff("respect"), eff("dominance"), eff("alignment")
    dyad_unc = eff("uncertainty", c["uncertainty"])
    closeness, loyalty, hostility, authority = rel("closeness"), rel("loyalty"), rel("hostility"), rel("authority")

    precision = clamp01(0.25 + 0.55 * s2 + 0.20 * (1.0 - dyad_unc))

    priors = {
        "help": clamp01(0.50 + 0.30 * loyalty + 0.20 * closeness - 0.35 * hostility),
        "harm": clamp01(0.10 + 0.60 * hostility + 0.10 * (1.0 - closeness)),
        "truth": clamp01(0.50 + 0.25 * loyalty + 0.15 * authority - 0.20 * hostility),
    }
    evidence = {
        "help": 1.20 * centered(support) + 0.90 * centered(alignment) + 0.70 * centered(trust)
                + 0.30 * centered(intimacy) - 1.10 * centered(threat),
        "harm": 1.20 * centered(threat) + 0.60 * centered(hostility) + 0.30 * centered(danger)
                - 0.70 * centered(trust) - 0.40 * centered(support),
        "truth": 1.00 * centered(trust) + 0.60 * centered(respect) + 0.40 * centered(alignment)
                 - 0.60 * centered(norm) - 0.35 * centered(surv) - 0.30 * centered(pub),
    }
    post = {k: inv_logit(logit(priors[k]) + precision * evidence[k]) for k in priors}
    post["stability"] = clamp01(1.0 - dyad_unc - 0.15 * crowd - 0.10 * danger)
    post["escalation"] = clamp01(post["harm"] * (0.65 + 0.20 * danger + 0.15 * crowd))

    att = {
        "approach": clamp01(0.55 * post["help"] + 0.25 * post["truth"] + 0.20 * intimacy - 0.55 * post["harm"]),
        "avoid": clamp01(0.65 * post["harm"] + 0.20 * (1.0 - post["stability"]) + 0.15 * danger),
        "respect": respect,
        "care": clamp01(0.40 * support + 0.25 * intimacy + 0.20 * loyalty + 0.15 * (1.0 - post["harm"])),
        "hostility": clamp01(0.55 * hostility + 0.30 * post["harm"] - 0.20 * post["truth"]),
    }

    # utilities
    u_help = (1.0 - danger) * 0.8 + (1.0 - norm) * 0.2
    u_harmed = -(0.8 * danger + 0.2)
    u_info = (1.0 - surv) * (1.0 - pub) * 0.9
    u_escal = -(0.6 * danger + 0.4 * crowd)
    u_boundary = 0.35 + 0.35 * norm + 0.30 * pub

    # outcome probabilities
    p_assist_ok = clamp01(post["help"] * (1.0 - post["harm"]))
    p_assist_harm = clamp01(post["harm"])
    p_share_value = clamp01(post["truth"])
    p_share_cost = clamp01(0.6 * surv + 0.4 * pub)
    p_neg_deesc = clamp01(0.55 * alignment + 0.25 * post["truth"] + 0.20 * s2)
    p_neg_escal = clamp01(0.45 * post["harm"] + 0.35 * att["hostility"] + 0.20 * (1.0 - post["stability"]))
    voi_monitor = clamp01(binary_entropy(post["harm"]) / math.log(2) * stakes)
    p_avoid_safety = clamp01(post["harm"])
    p_bound_reduce = clamp01(0.55 * post["harm"] + 0.25 * norm + 0.20 * pub)
    p_conf_win = clamp01(0.55 * dominance + 0.25 * respect + 0.20 * (1.0 - post["stability"]))
    p_conf_escal = clamp01(0.55 * pub + 0.25 * crowd + 0.20 * post["harm"])
    p_defer_good = clamp01(dyad_unc)
    p_defer_bad = clamp01(post["harm"] * (0.6 + 0.4 * danger))

    eu = {
        "assist": p_assist_ok * u_help + p_assist_harm * u_harmed,
        "share_info": p_share_value * u_info - p_share_cost * (0.4 + 0.6 * surv),
        "negotiate": p_neg_deesc * (0.35 + 0.45 * (1.0 - danger)) + p_neg_escal * u_escal,
        "monitor": voi_monitor * (0.35 + 0.65 * (1.0 - mode.time_pressure)) - 0.15 * crowd,
        "avoid": p_avoid_safety * (0.25 + 0.75 * danger) - 0.30 * post["help"],
        "set_boundary": p_bound_reduce * u_boundary + 0.10 * (1.0 - post["escalation"]),
        "confront": p_conf_win * (0.20 + 0.60 * dominance) + p_conf_escal * u_escal,
        "defer": p_defer_good * (0.25 + 0.55 * s2) - p_defer_bad * (0.30 + 0.70 * danger),
    }
    tau = policy_temperature(s2)
    probs = softmax([eu[a] for a in ACTIONS], tau)
    pi = {a: float(p) for a, p in zip(ACTIONS, probs)}

    return DyadPolicy(other_id, precision, priors, evidence, post, att, eu, tau, pi)


def policy_targets(index: AtomIndex, self_id: str) -> Tuple[str, ...]:
    return index.targets_of("tom:effective:dyad", self_id)


def build_tom_policy(index: AtomIndex, self_id: str) -> List[Atom]:
    mode = estimate_mode(index, self_id)
    ctx_ids = [atom_id("ctx", metric=k, subject=self_id) for k in CTX_KEYS]
    mode_id = atom_id("tom:mode", subject=self_id)

    out: List[Atom] = [derived(mode_id, mode.s2, ctx_ids, {
        **mode.ctx,
        "stakes": mode.stakes,
        "timePressure": mode.time_pressure,
        "voi": mode.voi,
        "S2": mode.s2,
        "k": S2_GAIN,
    }, source=SOURCE, label=mode.label, tags=("tom", "policy"))]

    for other in policy_targets(index, self_id):
        p = dyad_policy(index, self_id, other, mode)
        used = [mode_id] + \
            [atom_id("tom:effective:dyad", subject=self_id, target=other, metric=m) for m in DYAD_METRICS] + \
            [atom_id("rel:base", subject=self_id, target=other, metric=k) for k in REL_KEYS] + ctx_ids

        def mk(prefix, metric, value, label, parts, qualifier=None):
            kw = {"qualifier": qualifier} if qualifier else {}
            return derived(atom_id(prefix, subject=self_id, target=other, metric=metric, **kw), value, used, parts,
                           source=SOURCE, label=label, tags=("tom", "policy"))

        for k in ("help", "harm", "truth"):
            out.append(mk("tom:predict", k, p.posteriors[k], f"P({k})={round(p.posteriors[k] * 100)}%", {
                "prior": p.priors[k], "precision": p.precision, "evidence": p.evidence[k],
                "posterior": p.posteriors[k], "S2": mode.s2,
            }))
        out.append(mk("tom:predict", "stability", p.posteriors["stability"],
                      f"stability={round(p.posteriors['stability'] * 100)}%", {"stability": p.posteriors["stability"]}))
        out.append(mk("tom:predict", "escalation", p.posteriors["escalation"],
                      f"escalation={round(p.posteriors['escalation'] * 100)}%",
                      {"harm": p.posteriors["harm"], "escalation": p.posteriors["escalation"]}))

        for k, v in p.attitudes.items():
            out.append(mk("tom:att", k, v, f"{k}={round(v * 100)}%", {k: v}))

        policy_parts = [{"a": a, "EU": p.eu[a], "p": p.pi[a]} for a in ACTIONS]
        out.append(mk("tom:help", "willingness", p.willingness, f"help(w)={round(p.willingness * 100)}%", {
            "tau": p.tau, "pProsocial": p.willingness, "entropy": entropy01([p.pi[a] for a in ACTIONS]),
            "policy": policy_parts,
        }))
        for a in ACTIONS:
            out.append(mk("tom:afford", a, sigmoid(p.eu[a]), f"EU~{p.eu[a]:.2f}", {"EU": p.eu[a], "tau": p.tau}, "EU"))
            out.append(mk("tom:afford", a, p.pi[a], f"π({a})={round(p.pi[a] * 100)}%",
                          {"EU": p.eu[a], "tau": p.tau, "p": p.pi[a], "precision": p.precision}))
        logger.debug(f"tom policy {self_id}->{other}: S2={mode.s2:.3f} tau={p.tau:.3f} "
                     f"best={max(ACTIONS, key=lambda a: (p.pi[a], a))}")
    return out
