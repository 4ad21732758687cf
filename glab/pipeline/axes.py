"""
Stage S1: context axes.

Every axis is a clamped linear blend of world, map, scene and norm inputs. All inputs
are read through the index with explicit fallbacks, so a bare world still yields the
full axis set (mostly zeros, uncertainty from the default info adequacy of 0.6).
"""
import logging
from typing import List

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import build_parts, derived
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01

logger = logging.getLogger(__name__)

SOURCE = "axes"
DEFAULT_INFO_ADEQUACY = 0.6

AXES = (
    "privacy", "publicness", "control", "surveillance", "hierarchy", "crowd", "normPressure",
    "uncertainty", "danger", "intimacy", "timePressure", "scarcity", "legitimacy", "secrecy",
    "grief", "pain",
)


def derive_axes(index: AtomIndex, self_id: str) -> List[Atom]:
    def wid(prefix, metric):
        return atom_id(prefix, metric=metric, subject=self_id)

    def src(group, metric):
        return atom_id("ctx:src", group=group, metric=metric, subject=self_id)

    g = index.get_mag

    loc_privacy = g(wid("world:loc", "privacy"), 0.0)
    loc_control = g(wid("world:loc", "control_level"), 0.0)
    loc_crowd = g(wid("world:loc", "crowd"), 0.0)
    loc_norm = g(wid("world:loc", "normative_pressure"), 0.0)

    sc = {k: g(src("scene", k), 0.0) for k in
          ("crowd", "hostility", "urgency", "scarcity", "chaos", "novelty", "loss", "resourceAccess", "threat")}
    nm = {k: g(src("norm", k), 0.0) for k in
          ("privacy", "publicExposure", "surveillance", "normPressure", "proceduralStrict")}

    cover_id, exits_id, escape_id = wid("world:map", "cover"), wid("world:map", "exits"), wid("world:map", "escape")
    cover = g(cover_id, 0.0)
    # exits stand in for escape when the map has no escape metric
    escape = clamp01(max(g(escape_id, 0.0), g(exits_id, 0.0))) if exits_id in index else g(escape_id, 0.0)
    danger_id, hazard_id = wid("world:map", "danger"), wid("world:map", "hazard")
    map_danger = max(g(danger_id, 0.0), g(hazard_id, 0.0))

    info_id = wid("obs", "infoAdequacy")
    info = g(info_id, DEFAULT_INFO_ADEQUACY)
    uncertainty = clamp01(1.0 - info)

    privacy = clamp01(0.7 * loc_privacy + 0.3 * nm["privacy"])
    pub_loc = clamp01(1.0 - loc_privacy)
    publicness = clamp01(0.7 * pub_loc + 0.3 * nm["publicExposure"])
    surveillance = clamp01(0.55 * loc_control + 0.20 * publicness + 0.25 * nm["surveillance"])
    crowd = clamp01(0.6 * loc_crowd + 0.4 * sc["crowd"])
    norm_base = clamp01(0.55 * loc_norm + 0.45 * nm["normPressure"])
    hierarchy = clamp01(0.55 * loc_control + 0.25 * norm_base + 0.20 * nm["proceduralStrict"])
    danger_base = clamp01(0.65 * map_danger + 0.20 * (1 - escape) + 0.15 * (1 - cover))
    danger_social = clamp01(0.55 * sc["hostility"] + 0.45 * sc["threat"])
    danger = clamp01(0.75 * danger_base + 0.25 * danger_social)
    norm_pressure = clamp01(0.45 * norm_base + 0.30 * surveillance + 0.15 * publicness + 0.10 * nm["proceduralStrict"])
    control = clamp01(0.45 * loc_control + 0.20 * escape + 0.15 * cover + 0.20 * sc["resourceAccess"])
    intimacy = clamp01(0.7 * privacy + 0.3 * (1 - surveillance))
    time_pressure = clamp01(0.7 * sc["urgency"] + 0.3 * (1 - escape))
    scarcity = clamp01(0.75 * sc["scarcity"] + 0.25 * (1 - sc["resourceAccess"]))
    legitimacy = clamp01(0.45 * (1 - sc["chaos"]) + 0.35 * nm["proceduralStrict"] + 0.20 * loc_control)
    secrecy = clamp01(0.35 * surveillance + 0.20 * publicness + 0.25 * sc["threat"] + 0.20 * (1 - privacy))
    pain_id = atom_id("feat:char", subject=self_id, metric="body.pain")
    pain = g(pain_id, 0.0)

    ax = lambda k: wid("ctx", k)  # noqa: E731

    def mk(key, value, used, entries, formula, kind_note="axis"):
        return derived(ax(key), value, used, build_parts(entries, formula), source=SOURCE, notes=(kind_note,))

    out = [
        mk("privacy", privacy, [wid("world:loc", "privacy"), src("norm", "privacy")],
           [("locPrivacy", loc_privacy, 0.7), ("normPrivacy", nm["privacy"], 0.3)],
           "privacy = 0.7*locPrivacy + 0.3*normPrivacy"),
        mk("publicness", publicness, [wid("world:loc", "privacy"), src("norm", "publicExposure")],
           [("publicnessFromLoc", pub_loc, 0.7), ("normPublicExposure", nm["publicExposure"], 0.3)],
           "publicness = 0.7*(1-privacy) + 0.3*normPublicExposure"),
        mk("control", control, [wid("world:loc", "control_level"), escape_id, cover_id, src("scene", "resourceAccess")],
           [("controlLevel", loc_control, 0.45), ("escape", escape, 0.20), ("cover", cover, 0.15),
            ("resourceAccess", sc["resourceAccess"], 0.20)],
           "control = 0.45*controlLevel + 0.20*escape + 0.15*cover + 0.20*resourceAccess"),
        mk("surveillance", surveillance, [wid("world:loc", "control_level"), ax("publicness"), src("norm", "surveillance")],
           [("control", loc_control, 0.55), ("publicness", publicness, 0.20), ("normSurveillance", nm["surveillance"], 0.25)],
           "surveillance = 0.55*control + 0.20*publicness + 0.25*normSurveillance"),
        mk("hierarchy", hierarchy, [wid("world:loc", "control_level"), wid("world:loc", "normative_pressure"),
                                    src("norm", "normPressure"), src("norm", "proceduralStrict")],
           [("control", loc_control, 0.55), ("normBase", norm_base, 0.25), ("proceduralStrict", nm["proceduralStrict"], 0.20)],
           "hierarchy = 0.55*control + 0.25*normBase + 0.20*proceduralStrict"),
        mk("crowd", crowd, [wid("world:loc", "crowd"), src("scene", "crowd")],
           [("locCrowd", loc_crowd, 0.6), ("sceneCrowd", sc["crowd"], 0.4)],
           "crowd = 0.6*locCrowd + 0.4*sceneCrowd"),
        mk("normPressure", norm_pressure, [wid("world:loc", "normative_pressure"), ax("surveillance"), ax("publicness"),
                                           src("norm", "normPressure"), src("norm", "proceduralStrict")],
           [("normBase", norm_base, 0.45), ("surveillance", surveillance, 0.30), ("publicness", publicness, 0.15),
            ("proceduralStrict", nm["proceduralStrict"], 0.10)],
           "normPressure = 0.45*normBase + 0.30*surveillance + 0.15*publicness + 0.10*proceduralStrict"),
        mk("uncertainty", uncertainty, [info_id],
           [("infoAdequacy", info, -1.0, -(1 - info)), ("uncertainty", uncertainty)],
           "uncertainty = 1 - infoAdequacy"),
        mk("danger", danger, [danger_id, hazard_id, escape_id, cover_id, src("scene", "hostility"), src("scene", "threat")],
           [("dangerBase", danger_base, 0.75), ("dangerSocial", danger_social, 0.25), ("mapDanger", map_danger, 0.65),
            ("escape", escape, -0.20, -0.20 * escape), ("cover", cover, -0.15, -0.15 * cover),
            ("sceneHostility", sc["hostility"], 0.55), ("sceneThreat", sc["threat"], 0.45)],
           "danger = 0.75*(0.65*danger + 0.20*(1-escape) + 0.15*(1-cover)) + 0.25*(0.55*hostility + 0.45*sceneThreat)"),
        mk("intimacy", intimacy, [ax("privacy"), ax("surveillance")],
           [("privacy", privacy, 0.7), ("surveillance", surveillance, -0.3, -0.3 * surveillance)],
           "intimacy = 0.7*privacy + 0.3*(1-surveillance)"),
        mk("timePressure", time_pressure, [src("scene", "urgency"), escape_id],
           [("sceneUrgency", sc["urgency"], 0.7), ("escape", escape, -0.3, -0.3 * escape)],
           "timePressure = 0.7*urgency + 0.3*(1-escape)"),
        mk("scarcity", scarcity, [src("scene", "scarcity"), src("scene", "resourceAccess")],
           [("sceneScarcity", sc["scarcity"], 0.75), ("resourceAccess", sc["resourceAccess"], -0.25, -0.25 * sc["resourceAccess"])],
           "scarcity = 0.75*sceneScarcity + 0.25*(1-resourceAccess)"),
        mk("legitimacy", legitimacy, [src("scene", "chaos"), src("norm", "proceduralStrict"), wid("world:loc", "control_level")],
           [("chaos", sc["chaos"], -0.45, -0.45 * sc["chaos"]), ("proceduralStrict", nm["proceduralStrict"], 0.35),
            ("control", loc_control, 0.20)],
           "legitimacy = 0.45*(1-chaos) + 0.35*proceduralStrict + 0.20*control"),
        mk("secrecy", secrecy, [ax("surveillance"), ax("publicness"), src("scene", "threat"), ax("privacy")],
           [("surveillance", surveillance, 0.35), ("publicness", publicness, 0.20), ("sceneThreat", sc["threat"], 0.25),
            ("privacy", privacy, -0.20, -0.20 * privacy)],
           "secrecy = 0.35*surveillance + 0.20*publicness + 0.25*sceneThreat + 0.20*(1-privacy)"),
        mk("grief", sc["loss"], [src("scene", "loss")], [("sceneLoss", sc["loss"])], "grief = scene.loss"),
        mk("pain", pain, [pain_id], [("bodyPain", pain)], "pain = body.pain"),
        # auxiliary signals read by possibilities and appraisals
        mk("proceduralStrict", nm["proceduralStrict"], [src("norm", "proceduralStrict")],
           [("proceduralStrict", nm["proceduralStrict"])], "proceduralStrict = norm.proceduralStrict", "aux"),
        mk("cover", cover, [cover_id], [("cover", cover)], "cover = map.cover", "aux"),
        mk("escape", escape, [escape_id, exits_id], [("escape", escape)], "escape = max(map.escape, map.exits)", "aux"),
        mk("novelty", sc["novelty"], [src("scene", "novelty")], [("sceneNovelty", sc["novelty"])], "novelty = scene.novelty", "aux"),
    ]
    return out


def run_axes(ctx: StageContext) -> StageOutput:
    atoms = derive_axes(ctx.index, ctx.self_id)
    logger.debug(f"axes for {ctx.self_id}: " + ", ".join(f"{a.id}={a.magnitude:.2f}" for a in atoms[:6]))
    return StageOutput(tuple(atoms))
