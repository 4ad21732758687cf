from hypothesis import given, settings, strategies as st

from glab.atoms.atom import AtomOrigin
from glab.atoms.merge import Patch, apply_patch, merge_by_precedence, merge_newer_wins, wins_over
from glab.atoms.normalize import make_derived, make_fact

origins = st.sampled_from(list(AtomOrigin))


def fact(aid, mag, origin=AtomOrigin.WORLD, conf=1.0, source=""):
    return make_fact(aid, mag, origin, confidence=conf, source=source)


@st.composite
def atom_sets(draw):
    n = draw(st.integers(0, 12))
    out = []
    for i in range(n):
        out.append(fact(f"ctx:m{draw(st.integers(0, 5))}:A", draw(st.floats(0, 1)), draw(origins),
                        draw(st.floats(0, 1))))
    return out


def as_map(atoms):
    return {a.id: a for a in atoms}


@settings(deadline=None, max_examples=100)
@given(atoms=atom_sets())
def test_merge_with_itself_is_idempotent(atoms):
    base = merge_newer_wins([], atoms).atoms
    assert as_map(merge_newer_wins(base, base).atoms) == as_map(base)
    assert as_map(merge_by_precedence(base, base).atoms) == as_map(base)


def test_newer_wins_ignores_origin():
    base = [fact("ctx:danger:A", 0.9, AtomOrigin.OVERRIDE)]
    res = merge_newer_wins(base, [make_derived("ctx:danger:A", 0.1, ["world:map:danger:A"]),
                                  fact("ctx:crowd:A", 0.3)])
    m = as_map(res.atoms)
    assert m["ctx:danger:A"].magnitude == 0.1
    assert res.overridden_ids == ("ctx:danger:A",)
    assert res.added_ids == ("ctx:crowd:A",)


def test_precedence_order():
    obs = fact("x:v:A", 0.4, AtomOrigin.OBS)
    world = fact("x:v:A", 0.9, AtomOrigin.WORLD)
    override = fact("x:v:A", 0.1, AtomOrigin.OVERRIDE, conf=0.1)
    assert wins_over(obs, world)
    assert wins_over(override, obs)
    assert not wins_over(world, obs)


def test_confidence_then_string_tie_break():
    lo = fact("x:v:A", 0.5, conf=0.4)
    hi = fact("x:v:A", 0.5, conf=0.6)
    assert wins_over(hi, lo)
    a = fact("x:v:A", 0.5, source="a")
    b = fact("x:v:A", 0.5, source="b")
    assert wins_over(b, a) and not wins_over(a, b)
    # equal keys keep what is already there
    assert not wins_over(a, a)


def test_merge_does_not_mutate_inputs():
    base = [fact("ctx:danger:A", 0.2)]
    added = [fact("ctx:danger:A", 0.7, AtomOrigin.OBS)]
    merge_by_precedence(base, added)
    assert base[0].magnitude == 0.2


def test_apply_patch_add_update_remove():
    atoms = (fact("ctx:danger:A", 0.2), make_derived("ctx:crowd:A", 0.3, ["scene:crowd:A"]))
    out = apply_patch(atoms, Patch(
        add=(fact("ctx:novelty:A", 0.5),),
        update=(make_derived("ctx:crowd:A", 0.6, ["scene:crowd:A"]),),
        remove=("ctx:danger:A", "ctx:missing:A"),
    ))
    m = as_map(out.atoms)
    assert set(m) == {"ctx:crowd:A", "ctx:novelty:A"}
    assert m["ctx:crowd:A"].magnitude == 0.6
    assert [c.op for c in out.changes] == ["add", "update", "remove"]
    assert abs(out.changes[1].delta - 0.3) < 1e-9


def test_update_never_replaces_stronger_origin():
    atoms = (fact("ctx:danger:A", 0.9, AtomOrigin.OVERRIDE),)
    out = apply_patch(atoms, Patch(update=(make_derived("ctx:danger:A", 0.1, ["world:map:danger:A"]),)))
    assert out.atoms[0].magnitude == 0.9
    assert out.changes == ()


def test_update_of_missing_id_is_an_add():
    out = apply_patch((), Patch(update=(fact("ctx:danger:A", 0.4),)))
    assert len(out.atoms) == 1
    assert out.changes[0].op == "add"
