from hypothesis import given, settings, strategies as st

from glab.atoms.normalize import make_derived, make_fact
from glab.graph.atom_graph import build_atom_graph, summarize_atom_graph, topo_sort


def test_edges_run_from_dependency_to_derived(chain_atoms):
    g = build_atom_graph(chain_atoms)
    assert g.out["world:map:danger:A"] == ("ctx:danger:A",)
    assert g.into["threat:final:A"] == ("ctx:danger:A", "obs:nearby:A:B")
    assert g.missing == ()


def test_missing_references_are_not_nodes():
    a = make_derived("ctx:danger:A", 0.5, ["world:map:danger:A"])
    g = build_atom_graph([a])
    assert g.nodes == ("ctx:danger:A",)
    assert g.missing == ("world:map:danger:A",)


def test_topo_order_on_chain(chain_atoms):
    res = topo_sort(build_atom_graph(chain_atoms))
    assert res.ok
    order = list(res.order)
    assert order.index("world:map:danger:A") < order.index("ctx:danger:A") < order.index("threat:final:A")


def test_cycle_is_reported_with_sample():
    a = make_derived("x:a:A", 0.5, ["x:b:A"])
    b = make_derived("x:b:A", 0.5, ["x:a:A"])
    res = topo_sort(build_atom_graph([a, b, make_fact("world:tick", 1.0)]))
    assert not res.ok
    assert set(res.cycle_sample) == {"x:a:A", "x:b:A"}


def test_cycle_sample_is_bounded():
    ring = [make_derived(f"x:n{i}:A", 0.5, [f"x:n{(i + 1) % 100}:A"]) for i in range(100)]
    res = topo_sort(build_atom_graph(ring), cycle_sample_size=1000)
    assert not res.ok
    assert len(res.cycle_sample) == 64
    assert len(topo_sort(build_atom_graph(ring), cycle_sample_size=1).cycle_sample) == 3


def test_summary(chain_atoms):
    s = summarize_atom_graph(build_atom_graph(chain_atoms))
    assert s.nodes == 4 and s.edges == 3 and s.topo_ok
    assert s.max_in == 2 and s.max_in_id == "threat:final:A"


@st.composite
def dags(draw):
    n = draw(st.integers(1, 25))
    atoms = []
    for i in range(n):
        deps = draw(st.lists(st.integers(0, max(0, i - 1)), max_size=3)) if i else []
        if deps:
            atoms.append(make_derived(f"x:n{i}:A", 0.5, [f"x:n{d}:A" for d in deps]))
        else:
            atoms.append(make_fact(f"x:n{i}:A", 0.5))
    return atoms


@settings(deadline=None, max_examples=100)
@given(atoms=dags())
def test_topo_order_contains_every_node_once(atoms):
    g = build_atom_graph(atoms)
    res = topo_sort(g)
    assert res.ok
    assert sorted(res.order) == sorted(g.nodes)
    pos = {n: i for i, n in enumerate(res.order)}
    for u, vs in g.out.items():
        for v in vs:
            assert pos[u] < pos[v]
