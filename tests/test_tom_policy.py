import pytest

from glab.atoms.atom_index import AtomIndex
from glab.atoms.normalize import make_fact
from glab.tom.policy import ACTIONS, build_tom_policy, estimate_mode, policy_temperature


def ctx_index(**ctx):
    return AtomIndex([make_fact(f"ctx:{k}:A", v) for k, v in ctx.items()])


def test_urgent_danger_gets_less_deliberation_than_calm_uncertainty():
    urgent = estimate_mode(ctx_index(danger=0.8, uncertainty=0.6), "A")
    calm = estimate_mode(ctx_index(danger=0.1, uncertainty=0.9), "A")
    assert urgent.s2 < calm.s2
    assert urgent.label == "System-1"


def test_temperature_falls_with_s2():
    assert policy_temperature(1.0) < policy_temperature(0.0)
    assert policy_temperature(5.0) >= 0.15


def test_policy_per_dyad_is_a_distribution():
    atoms = [
        make_fact("ctx:danger:A", 0.3),
        make_fact("ctx:uncertainty:A", 0.5),
        make_fact("tom:effective:dyad:A:B:trust", 0.8),
        make_fact("tom:effective:dyad:A:B:threat", 0.1),
        make_fact("tom:effective:dyad:A:B:support", 0.7),
        make_fact("rel:base:A:B:closeness", 0.6),
    ]
    out = {a.id: a for a in build_tom_policy(AtomIndex(atoms), "A")}
    assert "tom:mode:A" in out
    pis = [a for aid, a in out.items() if aid.startswith("tom:afford:A:B:") and not aid.endswith(":EU")]
    assert len(pis) == len(ACTIONS)
    assert sum(a.magnitude for a in pis) == pytest.approx(1.0)
    help_ = out["tom:predict:A:B:help"]
    assert help_.trace.parts["posterior"] > help_.trace.parts["prior"]
    for a in out.values():
        assert a.id not in a.used_ids
