import pytest

from glab.atoms.atom import AtomOrigin
from glab.atoms.normalize import make_derived, make_fact
from glab.signals.signal_field import KNOWN_CHANNELS, build_signal_field


def test_every_channel_exists_even_when_empty():
    field = build_signal_field("A", [])
    assert set(field.channels) == set(KNOWN_CHANNELS)
    assert all(field.value(ch) == 0.0 for ch in KNOWN_CHANNELS)


def test_weights_are_magnitude_times_confidence_times_mapping():
    atoms = [
        make_derived("ctx:hostility:A", 0.8, ["scene:hostility:A"], confidence=0.5),
        make_derived("drv:controlNeed:A", 0.4, ["ctx:uncertainty:A"]),
        make_fact("obs:threat:A", 0.2, AtomOrigin.OBS),
    ]
    field = build_signal_field("A", atoms)
    threat = {s.atom_id: s.weight for s in field.channels["threat"].sources}
    assert threat["ctx:hostility:A"] == pytest.approx(0.8 * 0.5 * 0.75)
    assert threat["drv:controlNeed:A"] == pytest.approx(0.4 * 0.25)
    assert threat["obs:threat:A"] == pytest.approx(0.2)
    unc = {s.atom_id: s.weight for s in field.channels["uncertainty"].sources}
    assert unc["drv:controlNeed:A"] == pytest.approx(0.3)


def test_other_agents_and_raw_controls_are_ignored():
    atoms = [
        make_derived("ctx:danger:B", 0.9, ["world:map:danger:B"]),
        make_fact("ctx:src:A", 0.9),
        make_fact("obs:nearby:A", 0.9, AtomOrigin.OBS),
    ]
    field = build_signal_field("A", atoms)
    assert all(not ch.sources for ch in field.channels.values())


def test_raw_value_is_clamped():
    atoms = [make_derived(f"ctx:{k}:A", 1.0, ["x:y:A"]) for k in ("danger", "threat", "hostility")]
    field = build_signal_field("A", atoms)
    assert field.value("threat") == 1.0
    assert sum(field.channels["threat"].weights) > 1.0
