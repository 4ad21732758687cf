from glab.engine.apply_action import apply_chosen_action, infer_polarity, infer_tags
from glab.engine.tick_loop import run_world_tick
from glab.goals.session import SimulationSession
from glab.pipeline.decision import ActionCandidate, Decision


def decision_for(action_id, target=None, score=0.6):
    c = ActionCandidate(id=f"action:{action_id}:A" + (f":{target}" if target else ""), action_id=action_id,
                        target_id=target, score=score, goal_align=0.5, availability=0.5, tom_support=0.5, cost=0.1)
    return Decision(self_id="A", tick=3, ranked=(c,))


def test_tags_and_polarity():
    assert infer_tags("help") == ["help"]
    assert infer_polarity(infer_tags("attack")) == -1
    assert infer_tags("share_secret") == ["shared_secret"]
    assert infer_tags("wait") == ["wait"]


def test_action_becomes_next_tick_event_without_mutating(world):
    before = list(world.events)
    nxt = apply_chosen_action(world, "A", decision_for("help", "B"))
    assert world.events == before
    event = nxt.events[-1]
    assert event.id == "act:4:A:help:B"
    assert event.tick == world.tick + 1
    assert event.payload["polarity"] == 1
    assert event.payload["location_id"] == "hall"
    # scheduling the same action twice does nothing
    assert apply_chosen_action(nxt, "A", decision_for("help", "B")) is nxt


def test_no_decision_no_event(world):
    assert apply_chosen_action(world, "A", None) is world
    assert apply_chosen_action(world, "A", Decision(self_id="A")) is world


def test_world_tick_advances_everything(world, config):
    session = SimulationSession()
    report = run_world_tick(session, world, config=config)
    assert report.world.tick == world.tick + 1
    assert session.tick == 1
    assert set(report.results) == {"A", "B"}
    new = [e for e in report.world.events if e.id.startswith("act:")]
    assert {e.actor_id for e in new} == {"A", "B"}
    assert all(e.tick == world.tick + 1 for e in new)
    assert world.tick == 3
    assert 0.0 <= report.world.agents["A"].body["stress"] <= 1.0
