from glab.atoms.atom import AtomOrigin
from glab.atoms.atom_index import AtomIndex, dedupe_atoms_by_id, sort_atoms_deterministic
from glab.atoms.normalize import make_derived, make_fact


def test_lookups():
    idx = AtomIndex([
        make_fact("ctx:danger:A", 0.3),
        make_fact("ctx:dangerous:A", 0.9),
        make_fact("tom:dyad:A:C:trust", 0.4),
        make_fact("tom:dyad:A:B:trust", 0.6),
        make_fact("tom:dyad:B:A:trust", 0.2),
    ])
    assert idx.get_mag("ctx:danger:A") == 0.3
    assert idx.get_mag("ctx:missing:A", 0.7) == 0.7
    assert idx.first_mag(["ctx:missing:A", "ctx:danger:A"]) == (0.3, "ctx:danger:A")
    assert idx.first_mag(["ctx:missing:A"], 0.5) == (0.5, None)
    # segment aware: ctx:danger does not match ctx:dangerous
    assert [a.id for a in idx.by_prefix("ctx:danger")] == ["ctx:danger:A"]
    assert [a.id for a in idx.by_ns("tom")] == ["tom:dyad:A:B:trust", "tom:dyad:A:C:trust", "tom:dyad:B:A:trust"]
    assert idx.targets_of("tom:dyad", "A") == ("B", "C")


def test_reader_records_absent_ids():
    idx = AtomIndex([make_fact("ctx:danger:A", 0.3)])
    r = idx.reader()
    r.mag("ctx:danger:A")
    r.mag("ctx:crowd:A", 0.1)
    r.first(["world:map:cover:A", "ctx:cover:A"])
    assert r.take() == ["ctx:danger:A", "ctx:crowd:A", "world:map:cover:A"]
    assert r.take() == []


def test_dedupe_last_wins_and_sort_puts_sources_first():
    a = make_fact("ctx:x:A", 0.1)
    b = make_fact("ctx:x:A", 0.9)
    assert [x.magnitude for x in dedupe_atoms_by_id([a, b])] == [0.9]
    d = make_derived("ctx:y:A", 0.5, ["ctx:x:A"])
    o = make_fact("obs:z:A", 0.5, AtomOrigin.OBS)
    assert [x.id for x in sort_atoms_deterministic([d, o, a])] == ["ctx:x:A", "obs:z:A", "ctx:y:A"]
