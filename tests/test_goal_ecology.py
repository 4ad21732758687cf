import pytest
from hypothesis import given, strategies as st

from glab.atoms.atom_index import AtomIndex
from glab.goals.ecology import GOAL_DOMAINS, derive_domain_scores
from glab.goals.goal_state import GoalState, update_goal_state
from glab.goals.hysteresis import select_active_goals
from glab.goals.mode_gate import MODES, apply_mode_bias, gate_modes
from glab.goals.session import AgentMemoryUpdate, SimulationSession


def test_active_goal_does_not_flicker_on_a_small_lead():
    first = select_active_goals({"safety": 0.50, "status": 0.45}, (), {}, top_n=1, margin=0.1)
    assert first.active == ("safety",)
    # challenger is ahead, but not by more than the bonus
    second = select_active_goals({"safety": 0.50, "status": 0.55}, first.active, {}, top_n=1, margin=0.1)
    assert second.active == ("safety",)
    third = select_active_goals({"safety": 0.50, "status": 0.75}, second.active, {}, top_n=1, margin=0.1)
    assert third.active == ("status",)


def test_lock_in_widens_the_bonus():
    sel = select_active_goals({"safety": 0.50, "status": 0.65}, ("safety",), {"safety": 0.8}, top_n=1, margin=0.1)
    assert sel.bonus["safety"] == pytest.approx(0.18)
    assert sel.active == ("safety",)
    assert sel.lead["safety"] == pytest.approx(0.03)
    assert sel.lead["status"] < 0


def test_ranking_ties_break_by_name():
    sel = select_active_goals({"b": 0.5, "a": 0.5, "c": 0.5}, (), {}, top_n=2, margin=0.1)
    assert sel.ranking == ("a", "b", "c")
    assert sel.active == ("a", "b")


def test_five_active_ticks_build_commitment_and_fatigue():
    state = GoalState()
    seen = [state]
    for tick in range(5):
        state = update_goal_state(state, score=0.7, active=True, lead=0.1, tick=tick)
        seen.append(state)
    for prev, cur in zip(seen, seen[1:]):
        assert cur.lock_in >= prev.lock_in
        assert cur.fatigue >= prev.fatigue
    assert state.active_streak == 5
    assert state.last_active_tick == 4


def test_inactive_goal_decays_and_keeps_progress():
    state = GoalState(tension=0.6, lock_in=0.5, fatigue=0.4, progress=0.3, active_streak=3)
    nxt = update_goal_state(state, score=0.9, active=False, lead=-0.2, tick=7)
    assert nxt.tension < state.tension and nxt.lock_in < state.lock_in and nxt.fatigue < state.fatigue
    assert nxt.progress == state.progress
    assert nxt.active_streak == 0


def test_completion_resets_progress():
    state = GoalState(progress=0.98, tension=0.8, fatigue=0.2)
    nxt = update_goal_state(state, score=1.0, active=True, lead=0.5, tick=1)
    assert nxt.progress == 0.0
    assert nxt.completions == 1


@given(st.dictionaries(st.sampled_from(["threat", "uncertainty", "status", "norm", "attachment", "curiosity",
                                        "resource", "base"]), st.floats(0.0, 1.0)),
       st.floats(0.05, 5.0))
def test_mode_weights_are_a_distribution(felt, temperature):
    gate = gate_modes(felt, temperature)
    assert set(gate.weights) == set(MODES)
    assert sum(gate.weights.values()) == pytest.approx(1.0)
    assert all(0.0 <= w <= 1.0 for w in gate.weights.values())


def test_neutral_mode_bias_is_identity():
    assert apply_mode_bias(0.4, 0.5) == pytest.approx(0.4)
    assert apply_mode_bias(0.4, 1.0) > 0.4 > apply_mode_bias(0.4, 0.0)


def test_domain_scores_without_atoms_are_defined():
    scores = derive_domain_scores(AtomIndex([]), "A")
    assert set(scores) == set(GOAL_DOMAINS)
    assert all(0.0 <= s.value <= 1.0 for s in scores.values())


def test_session_commit_and_isolation():
    one, two = SimulationSession("one"), SimulationSession("two")
    one.commit("A", AgentMemoryUpdate(active=("safety",), goal_states={"safety": GoalState(lock_in=0.3)},
                                      energy_state={"threat": 0.4}))
    mem = one.memory("A")
    assert mem.prev_active == ("safety",)
    assert mem.goal_states["safety"].lock_in == 0.3
    assert two.memory("A").prev_active == ()
    one.reset()
    assert one.goal_state("A", "safety") is None
    assert one.advance() == 1
