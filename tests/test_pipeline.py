import pytest

from glab.atoms.atom import AtomOrigin
from glab.atoms.atom_index import AtomIndex
from glab.atoms.normalize import make_fact
from glab.goals.session import SimulationSession
from glab.pipeline.axes import AXES
from glab.pipeline.decision import decide
from glab.pipeline.possibilities import derive_possibilities
from glab.pipeline.runner import run_pipeline
from glab.pipeline.stage_types import PipelineInput
from glab.pipeline.stages import STAGES, stage_by_id
from glab.pipeline.world_facts import world_atoms


def test_full_run_is_valid_and_traced(world, config):
    res = run_pipeline(PipelineInput(self_id="A", world=world), config=config)
    assert [f.stage for f in res.frames] == [s.stage_id for s in STAGES]
    assert res.validation.ok, res.validation.issues
    assert res.graph_summary.topo_ok
    assert res.decision is not None and res.decision.best is not None
    for a in res.atoms:
        assert a.id not in a.used_ids
        if a.origin == AtomOrigin.DERIVED:
            assert a.used_ids, a.id
    assert res.energy.total("threat") == pytest.approx(
        sum(s.weight for s in res.signal_field.channels["threat"].sources))


def test_namespaces_per_stage(world, config):
    res = run_pipeline(PipelineInput(self_id="A", world=world), config=config)
    added = {f.stage: {i.split(":")[0] for i in f.added_ids} for f in res.frames}
    assert "ctx" in added["S1"]
    assert "threat" in added["S4"]
    assert {"app", "emo"} <= added["S5"]
    assert {"drv", "ener", "goal"} <= added["S6"]
    assert "aff" in added["S7"]
    assert added["S8"] == {"action"}


def test_friend_is_not_attacked(world, config):
    res = run_pipeline(PipelineInput(self_id="A", world=world), config=config)
    idx = res.index()
    assert "con:tabooAttack:A:B" in idx
    assert "aff:attack:A:B" in res.decision.blocked
    assert all(c.action_id != "attack" for c in res.decision.ranked)


def test_run_without_world_still_decides(config):
    res = run_pipeline(PipelineInput(self_id="Z"), config=config)
    assert res.validation.ok
    assert res.decision.best is not None
    # no observations: 1 - default info adequacy, before the character lens
    assert AtomIndex(stage_frame(res, "S1").atoms).get_mag("ctx:uncertainty:Z") == pytest.approx(0.4)
    assert any("not in world snapshot" in w for w in stage_frame(res, "S0").warnings)


def test_override_survives_every_stage(world, config):
    override = make_fact("ctx:danger:A", 0.95, AtomOrigin.OVERRIDE)
    res = run_pipeline(PipelineInput(self_id="A", world=world, override_atoms=(override,)), config=config)
    danger = res.index().get("ctx:danger:A")
    assert danger.origin == AtomOrigin.OVERRIDE and danger.magnitude == 0.95
    assert "override pinned: ctx:danger:A" in stage_frame(res, "S1").warnings


def stage_frame(res, stage_id):
    return next(f for f in res.frames if f.stage == stage_id)


def test_identical_inputs_give_identical_atoms(world, config):
    a = run_pipeline(PipelineInput(self_id="A", world=world), config=config)
    b = run_pipeline(PipelineInput(self_id="A", world=world), config=config)
    assert a.atoms == b.atoms
    assert a.decision == b.decision


def test_session_carries_goal_memory(world, config):
    session = SimulationSession()
    first = run_pipeline(PipelineInput(self_id="A", world=world), session=session, config=config)
    assert session.memory("A").prev_active == first.memory_update.active
    session.advance()
    second = run_pipeline(PipelineInput(self_id="A", world=world), session=session, config=config)
    for d in first.memory_update.active:
        if d in second.memory_update.active:
            assert second.memory_update.goal_states[d].lock_in >= first.memory_update.goal_states[d].lock_in


def test_commit_false_leaves_the_session_alone(world, config):
    session = SimulationSession()
    run_pipeline(PipelineInput(self_id="A", world=world), session=session, config=config, commit=False)
    assert session.memory("A").prev_active == ()


def test_partial_stage_list(world, config):
    res = run_pipeline(PipelineInput(self_id="A", world=world), config=config,
                       stages=[stage_by_id("S0"), stage_by_id("S1")])
    assert res.decision is None
    ids = [a.id for a in res.atoms]
    assert any(i.startswith("goal:lifeDomain:") for i in ids)
    assert not any(i.startswith(("goal:state:", "goal:active:", "goal:mode:", "drv:")) for i in ids)
    with pytest.raises(ValueError):
        stage_by_id("S9")


def test_decision_ranking_is_sorted_and_contains_wait():
    idx = AtomIndex([make_fact("obs:nearby:A:B", 0.8, AtomOrigin.OBS), make_fact("ctx:danger:A", 0.7)])
    poss, _ = derive_possibilities(idx, "A")
    decision = decide(idx, "A", poss, tick=1)
    scores = [(-c.score, c.id) for c in decision.ranked]
    assert scores == sorted(scores)
    assert any(c.action_id == "wait" for c in decision.ranked)


def test_every_context_axis_is_derived(world, config):
    res = run_pipeline(PipelineInput(self_id="A", world=world), config=config, stages=STAGES[:2])
    idx = res.index()
    for axis in AXES:
        a = idx.get(f"ctx:{axis}:A")
        assert a is not None, axis
        assert a.trace.parts.get("formula")


def test_tick_fact_keeps_its_id_across_ticks(world):
    now = {a.id: a for a in world_atoms(world, "A")}
    later = {a.id: a for a in world_atoms(world.model_copy(update={"tick": world.tick + 1}), "A")}
    assert now["world:tick"].meta["tick"] == 3
    assert later["world:tick"].meta["tick"] == 4
    assert not any(i.startswith("world:tick:") for i in now)
