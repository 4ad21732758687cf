"""
One orchestrator tick as a fold over the ordered producers.

The state threaded through the fold is immutable: every step gets the atom tuple left
by the previous producer, applies its patch and hands on a new tuple. A producer that
raises contributes nothing; the step returns the state it was given plus an error
entry in the trace.
"""
import logging
from functools import reduce
from typing import Any, Dict, Iterable, List, NamedTuple, Tuple

from glab.atoms.atom import Atom
from glab.atoms.atom_index import AtomIndex
from glab.atoms.merge import AtomChange, apply_patch
from glab.orchestrator.registry import ProducerRegistry
from glab.orchestrator.types import (
    OrchestratorContext,
    OrchestratorTraceV1,
    ProducerOutputs,
    ProducerSpec,
    ProducerTrace,
    StageTrace,
    TickResult,
    tick_id,
)

logger = logging.getLogger(__name__)


class FoldState(NamedTuple):
    atoms: Tuple[Atom, ...]
    changes: Tuple[AtomChange, ...]
    producers: Tuple[Tuple[str, ProducerTrace], ...]
    artifacts: Dict[str, Any]


def _outputs(changes: Iterable[AtomChange]) -> ProducerOutputs:
    out = ProducerOutputs()
    for c in changes:
        {"add": out.atoms_added, "update": out.atoms_updated, "remove": out.atoms_removed}[c.op].append(c.id)
    return out


def step(ctx: OrchestratorContext, state: FoldState, item: Tuple[str, ProducerSpec]) -> FoldState:
    stage_id, spec = item
    view = ctx.model_copy(update={"artifacts": dict(state.artifacts)})
    try:
        res = spec.run(view, AtomIndex(state.atoms))
        outcome = apply_patch(state.atoms, res.patch)
    except Exception as e:
        logger.exception(f"producer {stage_id}/{spec.name} failed, keeping the working set from before it")
        trace = ProducerTrace(name=spec.name, version=spec.version, priority=spec.priority,
                              error=f"{type(e).__name__}: {e}")
        return state._replace(producers=state.producers + ((stage_id, trace),))

    trace = ProducerTrace(
        name=spec.name,
        version=spec.version,
        priority=spec.priority,
        input_refs=list(res.input_refs),
        outputs=_outputs(outcome.changes),
        why=list(res.why),
    )
    return FoldState(
        atoms=outcome.atoms,
        changes=state.changes + outcome.changes,
        producers=state.producers + ((stage_id, trace),),
        artifacts={**state.artifacts, **res.artifacts},
    )


def human_log(ctx: OrchestratorContext, atoms_in: int, atoms_out: int, changes: List[AtomChange], top_n: int) -> List[str]:
    n_add = sum(1 for c in changes if c.op == "add")
    n_upd = sum(1 for c in changes if c.op == "update")
    n_rem = sum(1 for c in changes if c.op == "remove")
    lines = [
        f"Tick {tick_id(ctx.tick)} @ {ctx.time}",
        f"atoms: in={atoms_in} out={atoms_out}  (+{n_add} ~{n_upd} -{n_rem})",
    ]
    top = sorted(changes, key=lambda c: (-abs(c.delta), c.id))[:max(0, top_n)]
    for c in top:
        b = c.before.magnitude if c.before is not None else 0.0
        a = c.after.magnitude if c.after is not None else 0.0
        lines.append(f"{c.op.upper()} {c.id} {b:.2f} -> {a:.2f} ({c.delta:+.2f})")
    return lines


def run_tick(ctx: OrchestratorContext, registry: ProducerRegistry, atoms_in: Iterable[Atom]) -> TickResult:
    atoms_in = tuple(atoms_in)
    plan = [(stage_id, p) for stage_id, producers in registry.ordered() for p in producers]
    initial = FoldState(atoms=atoms_in, changes=(), producers=(), artifacts=dict(ctx.artifacts))
    final = reduce(lambda s, item: step(ctx, s, item), plan, initial)

    stages: List[StageTrace] = []
    for stage_id, trace in final.producers:
        if not stages or stages[-1].stage_id != stage_id:
            stages.append(StageTrace(stage_id=stage_id))
        stages[-1].producers.append(trace)

    # stable: several changes to one id keep their application order
    changes = sorted(final.changes, key=lambda c: c.id)
    log = human_log(ctx, len(atoms_in), len(final.atoms), changes, ctx.config.human_log_top_n)
    for line in log:
        logger.info(line)

    trace = OrchestratorTraceV1(
        tick_id=tick_id(ctx.tick),
        time=ctx.time,
        seed=ctx.seed,
        inputs={"atoms_in_count": len(atoms_in), "self_id": ctx.self_id},
        stages=stages,
        atom_changes=changes,
        atoms_out_count=len(final.atoms),
        human_log=log,
    )
    return TickResult(final.atoms, trace, final.artifacts)
