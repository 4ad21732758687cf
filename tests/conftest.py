import pytest

from glab.atoms.atom import AtomOrigin
from glab.atoms.normalize import make_derived, make_fact
from glab.config.config import make_pipeline_config
from glab.world.models import (
    AgentSnapshot,
    LocationSnapshot,
    MapMetrics,
    Relationship,
    SceneSnapshot,
    WorldEvent,
    WorldSnapshot,
)


@pytest.fixture
def config():
    return make_pipeline_config()


@pytest.fixture
def world():
    hall = LocationSnapshot(
        id="hall",
        visibility=0.8,
        noise=0.3,
        social_visibility=0.6,
        normative_pressure=0.5,
        control_level=0.4,
        crowd_level=0.3,
        map=MapMetrics(danger=0.3, cover=0.4, obstacles=0.2, exits=2, hazard=0.1),
    )
    a = AgentSnapshot(
        id="A",
        location_id="hall",
        position=(0.0, 0.0),
        traits={"paranoia": 0.7, "sensitivity": 0.6, "care": 0.5},
        body={"stress": 0.4, "fatigue": 0.2},
        capabilities={"weapon": 0.0},
        life_goals={"safety": 0.7, "affiliation": 0.6},
        relationships={"B": Relationship(other_id="B", closeness=0.6, loyalty=0.7, tags=["friend"])},
        tom={"B": {"trust": 0.7, "threat": 0.1}},
    )
    b = AgentSnapshot(
        id="B",
        location_id="hall",
        position=(3.0, 4.0),
        traits={"paranoia": 0.3},
        relationships={"A": Relationship(other_id="A", closeness=0.4, hostility=0.2)},
    )
    return WorldSnapshot(
        tick=3,
        time=12.0,
        agents={"A": a, "B": b},
        locations={"hall": hall},
        scene=SceneSnapshot(preset_id="market", metrics={"crowd": 40, "urgency": 0.3, "novelty": 0.5},
                            norms={"surveillance": 0.4, "proceduralStrict": 0.2}),
        events=[WorldEvent(id="e1", tick=2, kind="help", actor_id="B", target_id="A", magnitude=0.8, tags=["help"])],
    )


@pytest.fixture
def chain_atoms():
    """w -> d1 -> d2, plus an unrelated fact."""
    w = make_fact("world:map:danger:A", 0.6)
    o = make_fact("obs:nearby:A:B", 0.5, AtomOrigin.OBS)
    d1 = make_derived("ctx:danger:A", 0.6, ["world:map:danger:A"])
    d2 = make_derived("threat:final:A", 0.5, ["ctx:danger:A", "obs:nearby:A:B"])
    return [w, o, d1, d2]
