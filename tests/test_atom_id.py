import pytest
from hypothesis import given, settings, strategies as st

from glab.atoms.atom_id import AtomId, atom_id

segment = st.text(alphabet="abcdefghijklmnopqrstuvwxyzABC_.0123456789", min_size=1, max_size=8)


def test_build_dyad_family():
    assert atom_id("tom:dyad", subject="A", target="B", metric="trust") == "tom:dyad:A:B:trust"
    assert atom_id("emo:dyad", metric="fearOf", subject="A", target="B") == "emo:dyad:fearOf:A:B"


def test_default_family_drops_missing_target():
    assert atom_id("ctx", metric="danger", subject="A") == "ctx:danger:A"
    assert atom_id("action", metric="talk", subject="A", target="B") == "action:talk:A:B"


def test_afford_literal_segment_and_qualifier():
    assert atom_id("tom:afford", subject="A", target="B", metric="assist") == "tom:afford:A:B:action:assist"
    assert atom_id("tom:afford", subject="A", target="B", metric="assist", qualifier="EU") == \
        "tom:afford:A:B:action:assist:EU"


def test_roles_roundtrip_through_parse():
    aid = AtomId.parse("tom:effective:dyad:A:B:threat")
    assert aid.subject == "A"
    assert aid.target == "B"
    assert aid.metric == "threat"
    assert aid.ns == "tom"

    feat = AtomId.parse("feat:char:A:trait.paranoia")
    assert feat.subject == "A"
    assert feat.metric == "trait.paranoia"


def test_unknown_role_and_missing_role_raise():
    with pytest.raises(ValueError):
        atom_id("ctx", metric="danger", subject="A", other="B")
    with pytest.raises(ValueError):
        atom_id("tom:dyad", subject="A", metric="trust")


def test_strict_parse_rejects_empty_segments():
    with pytest.raises(ValueError):
        AtomId.parse("ctx::A", strict=True)
    with pytest.raises(ValueError):
        AtomId.parse("")
    assert AtomId.parse("ctx::A").segments == ("ctx", "", "A")


def test_starts_with_is_segment_wise():
    aid = AtomId.parse("ctx:danger:A")
    assert aid.starts_with("ctx:danger")
    assert aid.starts_with("ctx:")
    assert not aid.starts_with("ctx:dan")


@settings(deadline=None, max_examples=100)
@given(metric=segment, subject=segment, target=segment)
def test_serialize_parse_identity(metric, subject, target):
    text = atom_id("rel:base", subject=subject, target=target, metric=metric)
    aid = AtomId.parse(text)
    assert aid.serialize() == text
    assert (aid.subject, aid.target, aid.metric) == (subject, target, metric)
