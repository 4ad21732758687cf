import pytest

from glab.atoms.atom import AtomOrigin
from glab.atoms.merge import Patch
from glab.atoms.normalize import make_fact
from glab.orchestrator.producers import default_registry
from glab.orchestrator.registry import ProducerRegistry
from glab.orchestrator.run_tick import run_tick
from glab.orchestrator.types import TRACE_SCHEMA, OrchestratorContext, ProducerResult, ProducerSpec, tick_id
from glab.pipeline.stage_types import PipelineInput


def adds(*atoms, why=()):
    return lambda ctx, index: ProducerResult(patch=Patch(add=tuple(atoms)), why=list(why))


def test_stronger_origin_wins_regardless_of_order():
    obs = make_fact("misc:x:A", 0.4, AtomOrigin.OBS)
    world = make_fact("misc:x:A", 0.9, AtomOrigin.WORLD)
    for first, second in ((obs, world), (world, obs)):
        reg = ProducerRegistry([
            ProducerSpec("S1", "first", 10, adds(first)),
            ProducerSpec("S1", "second", 5, adds(second)),
        ])
        res = run_tick(OrchestratorContext(tick=1), reg, [])
        assert len(res.atoms) == 1
        assert res.atoms[0].origin == AtomOrigin.OBS
        assert res.atoms[0].magnitude == 0.4


def test_producer_order_is_stage_then_priority_then_name():
    calls = []

    def record(name):
        def run(ctx, index):
            calls.append(name)
            return ProducerResult()
        return run

    reg = ProducerRegistry([
        ProducerSpec("S2", "b", 1, record("S2/b")),
        ProducerSpec("S1", "z", 1, record("S1/z")),
        ProducerSpec("S1", "a", 1, record("S1/a")),
        ProducerSpec("S1", "m", 9, record("S1/m")),
    ])
    run_tick(OrchestratorContext(), reg, [])
    assert calls == ["S1/m", "S1/a", "S1/z", "S2/b"]


def test_duplicate_registration_is_rejected():
    reg = ProducerRegistry([ProducerSpec("S1", "p", 1, adds())])
    with pytest.raises(ValueError):
        reg.register(ProducerSpec("S1", "p", 2, adds()))
    reg.register(ProducerSpec("S2", "p", 1, adds()))
    reg.unregister("S1", "p")
    assert reg.stages() == ["S2"]


def test_failing_producer_is_isolated():
    def boom(ctx, index):
        raise RuntimeError("nope")

    reg = ProducerRegistry([
        ProducerSpec("S1", "ok", 2, adds(make_fact("misc:a:A", 0.5))),
        ProducerSpec("S1", "boom", 1, boom),
        ProducerSpec("S2", "later", 1, lambda ctx, index: ProducerResult(
            patch=Patch(add=(make_fact("misc:b:A", index.get_mag("misc:a:A")),)))),
    ])
    res = run_tick(OrchestratorContext(tick=2), reg, [])
    assert sorted(a.id for a in res.atoms) == ["misc:a:A", "misc:b:A"]
    traces = {p.name: p for s in res.trace.stages for p in s.producers}
    assert traces["boom"].error == "RuntimeError: nope"
    assert traces["ok"].error is None
    assert traces["later"].outputs.atoms_added == ["misc:b:A"]


def test_update_never_beats_a_stronger_origin_and_remove_runs_last():
    fact = make_fact("misc:x:A", 0.9, AtomOrigin.OVERRIDE)
    reg = ProducerRegistry([ProducerSpec("S1", "p", 1, lambda ctx, index: ProducerResult(patch=Patch(
        update=(make_fact("misc:x:A", 0.1, AtomOrigin.OBS), make_fact("misc:y:A", 0.2)),
        remove=("misc:y:A", "misc:absent:A"),
    )))])
    res = run_tick(OrchestratorContext(), reg, [fact])
    assert [a.id for a in res.atoms] == ["misc:x:A"]
    assert res.atoms[0].magnitude == 0.9
    assert [c.op for c in res.trace.atom_changes] == ["add", "remove"]


def test_trace_shape():
    reg = ProducerRegistry([ProducerSpec("S1", "p", 1, adds(make_fact("misc:a:A", 0.5), why=["rule:a"]))])
    res = run_tick(OrchestratorContext(tick=42, time=1.5, seed=7), reg, [make_fact("misc:z:A", 0.1)])
    dumped = res.trace.model_dump(by_alias=True)
    assert dumped["schema"] == TRACE_SCHEMA
    assert res.trace.tick_id == "t00042" == tick_id(42)
    assert res.trace.atoms_out_count == 2
    assert res.trace.stages[0].producers[0].why == ["rule:a"]
    assert res.trace.human_log[0] == "Tick t00042 @ 1.5"
    assert res.trace.human_log[1] == "atoms: in=1 out=2  (+1 ~0 -0)"
    assert res.trace.human_log[2].startswith("ADD misc:a:A 0.00 -> 0.50")


def test_default_registry_runs_the_whole_pipeline(world, config):
    reg = default_registry()
    assert reg.stages() == [f"S{i}" for i in range(9)]
    ctx = OrchestratorContext(tick=world.tick, inputs=PipelineInput(self_id="A", world=world), config=config)
    res = run_tick(ctx, reg, [])
    assert all(p.error is None for s in res.trace.stages for p in s.producers)
    ids = {a.id for a in res.atoms}
    assert "threat:final:A" in ids
    assert any(i.startswith("action:") for i in ids)
    assert res.artifacts["decision"].best is not None


def test_stage_producer_needs_inputs():
    res = run_tick(OrchestratorContext(), default_registry(), [])
    errors = [p.error for s in res.trace.stages for p in s.producers]
    assert all(e and e.startswith("ValueError") for e in errors)
    assert res.atoms == ()
