import json

import pytest
from hypothesis import given, settings, strategies as st

from glab.atoms.normalize import make_derived, make_fact
from glab.graph.atom_graph import build_atom_graph
from glab.graph.energy import EDGE_ARROW, propagate_atom_energy
from glab.signals.signal_field import build_signal_field


def test_energy_flows_down_the_chain(chain_atoms):
    g = build_atom_graph(chain_atoms)
    field = build_signal_field("A", chain_atoms)
    res = propagate_atom_energy(g, field, steps=6, decay=0.25, top_k=8)
    threat = res.node_energy["threat"]
    assert threat["threat:final:A"] > 0
    key = f"ctx:danger:A{EDGE_ARROW}threat:final:A"
    assert res.edge_flow["threat"][key] > 0
    attributed = {a.atom_id for a in res.attribution["threat"]["threat:final:A"]}
    assert "ctx:danger:A" in attributed


def test_zero_steps_keeps_the_seed(chain_atoms):
    g = build_atom_graph(chain_atoms)
    field = build_signal_field("A", chain_atoms)
    res = propagate_atom_energy(g, field, steps=0)
    for ch, channel in field.channels.items():
        assert res.total(ch) == pytest.approx(sum(s.weight for s in channel.sources if s.atom_id in g.nodes))


def test_identical_inputs_give_identical_results(chain_atoms):
    g = build_atom_graph(chain_atoms)
    field = build_signal_field("A", chain_atoms)
    a = propagate_atom_energy(g, field, steps=5)
    b = propagate_atom_energy(g, field, steps=5)
    assert a.model_dump() == b.model_dump()


def test_history_and_convergence(chain_atoms):
    g = build_atom_graph(chain_atoms)
    field = build_signal_field("A", chain_atoms)
    res = propagate_atom_energy(g, field, steps=64, decay=0.5, convergence_threshold=1e-6, track_history=True,
                                history_node_ids=["threat:final:A"])
    assert res.convergence["threat"].converged
    assert list(res.history["threat"]) == ["threat:final:A"]


def test_zero_steps_reports_a_finite_delta(chain_atoms):
    g = build_atom_graph(chain_atoms)
    field = build_signal_field("A", chain_atoms)
    res = propagate_atom_energy(g, field, steps=0, convergence_threshold=1e-6)
    conv = json.loads(res.model_dump_json())["convergence"]["threat"]
    assert conv["iterations"] == 0
    assert conv["max_delta"] == 0.0
    assert not conv["converged"]


@st.composite
def seeded_dags(draw):
    n = draw(st.integers(2, 15))
    atoms = [make_fact("ctx:danger:A", draw(st.floats(0.05, 1.0)))]
    for i in range(1, n):
        deps = draw(st.lists(st.integers(0, i - 1), min_size=1, max_size=3))
        ids = ["ctx:danger:A" if d == 0 else f"x:n{d}:A" for d in deps]
        atoms.append(make_derived(f"x:n{i}:A", 0.5, ids))
    return atoms


@settings(deadline=None, max_examples=60)
@given(atoms=seeded_dags(), steps=st.integers(0, 12), decay=st.floats(0.0, 1.0), top_k=st.integers(1, 24))
def test_energy_is_conserved(atoms, steps, decay, top_k):
    g = build_atom_graph(atoms)
    field = build_signal_field("A", atoms)
    seeded = sum(s.weight for s in field.channels["threat"].sources)
    res = propagate_atom_energy(g, field, steps=steps, decay=decay, top_k=top_k)
    assert res.total("threat") == pytest.approx(seeded, rel=1e-9, abs=1e-12)
    for node, attribution in res.attribution["threat"].items():
        assert len(attribution) <= top_k
