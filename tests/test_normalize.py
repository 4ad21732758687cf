import math

from hypothesis import given, settings, strategies as st

from glab.atoms.atom import NAMESPACE_SPECS, AtomNamespace, AtomOrigin, magnitude_range
from glab.atoms.normalize import MISSING_TRACE_NOTE, make_derived, normalize_atom

any_float = st.one_of(st.floats(allow_nan=True, allow_infinity=True), st.integers(-10, 10))


def test_every_namespace_has_a_range():
    assert set(NAMESPACE_SPECS) == set(AtomNamespace)


def test_infers_namespace_kind_and_roles():
    a = normalize_atom({"id": "tom:dyad:A:B:trust", "magnitude": 0.4})
    assert a.ns == AtomNamespace.TOM
    assert a.kind == "dyad"
    assert a.subject == "A"
    assert a.target == "B"
    assert a.code == "tom.dyad"


def test_unknown_namespace_is_misc():
    a = normalize_atom({"id": "weird:x:A", "magnitude": 0.4, "origin": "world"})
    assert a.ns == AtomNamespace.MISC


def test_unknown_origin_falls_back_to_default():
    a = normalize_atom({"id": "world:map:danger:A", "magnitude": 0.3, "origin": "gossip"}, AtomOrigin.OBS)
    assert a.origin == AtomOrigin.OBS
    assert a.magnitude == 0.3


def test_signed_valence_keeps_sign():
    a = make_derived("emo:valence:A", -0.7, ["emo:fear:A"])
    assert a.magnitude == -0.7
    b = make_derived("emo:fear:A", -0.7, ["app:threat:A"])
    assert b.magnitude == 0.0


def test_self_reference_and_duplicates_are_stripped():
    a = make_derived("ctx:danger:A", 0.5, ["ctx:danger:A", "world:map:danger:A", "world:map:danger:A", ""])
    assert a.used_ids == ("world:map:danger:A",)


def test_derived_without_trace_gets_marker():
    a = normalize_atom({"id": "ctx:danger:A", "magnitude": 0.5, "origin": AtomOrigin.DERIVED})
    assert MISSING_TRACE_NOTE in a.trace.notes
    fact = normalize_atom({"id": "world:map:danger:A", "magnitude": 0.5, "origin": AtomOrigin.WORLD})
    assert fact.trace is None


@settings(deadline=None, max_examples=200)
@given(ns=st.sampled_from([n.value for n in AtomNamespace]), mag=any_float, conf=any_float)
def test_magnitude_and_confidence_finite_and_in_range(ns, mag, conf):
    a = normalize_atom({"id": f"{ns}:valence:A", "magnitude": mag, "confidence": conf, "origin": "world"})
    lo, hi = magnitude_range(a.ns, a.kind)
    assert math.isfinite(a.magnitude) and lo <= a.magnitude <= hi
    assert math.isfinite(a.confidence) and 0.0 <= a.confidence <= 1.0
