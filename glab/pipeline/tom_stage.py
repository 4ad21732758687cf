from glab.atoms.atom_index import AtomIndex
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.tom.dyads import derive_effective_dyads
from glab.tom.policy import build_tom_policy, estimate_mode


def run_tom(ctx: StageContext) -> StageOutput:
    """Stage S3: effective dyads first, then the policy layer reading them."""
    dyads = derive_effective_dyads(ctx.index, ctx.self_id)
    view = AtomIndex(ctx.index.atoms + tuple(dyads))
    policy = build_tom_policy(view, ctx.self_id)
    mode = estimate_mode(view, ctx.self_id)
    return StageOutput(tuple(dyads) + tuple(policy), {"tom": {"S2": mode.s2, "mode": mode.label,
                                                               "dyad_count": len(dyads)}})
