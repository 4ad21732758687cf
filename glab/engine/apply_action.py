"""Turning a decision into a world event for the next tick."""
import logging
from typing import List, Optional

from glab.pipeline.decision import Decision
from glab.utils.math_utils import clamp01
from glab.world.models import WorldEvent, WorldSnapshot

logger = logging.getLogger(__name__)

MAX_TAGS = 6

# substring of the action id -> event tag, checked in this order
TAG_RULES = (
    (("help", "aid", "save", "reassure", "comfort"), "help"),
    (("attack", "harm", "hurt", "intimidate", "threaten", "blame", "accuse"), "attack"),
    (("deceive", "lie", "gossip", "rumor"), "lie"),
    (("betray",), "betrayal"),
    (("secret",), "shared_secret"),
    (("apologize",), "apology"),
    (("thank",), "gratitude"),
    (("forgive",), "forgive"),
    (("reconcile",), "reconcile"),
    (("set_boundary",), "boundary"),
    (("request_help",), "request_help"),
    (("talk", "negotiate"), "talk"),
    (("escape", "exit"), "escape"),
    (("hide", "sneak"), "hide"),
    (("self_talk", "monologue"), "self_talk"),
)


def infer_tags(action_id: str) -> List[str]:
    aid = (action_id or "").lower()
    tags: List[str] = []
    for needles, tag in TAG_RULES:
        if tag not in tags and any(n in aid for n in needles):
            tags.append(tag)
    if not tags:
        tags.append(aid.split(":")[0] or "action")
    return tags[:MAX_TAGS]


def infer_polarity(tags: List[str]) -> int:
    if "help" in tags:
        return 1
    if "attack" in tags:
        return -1
    return 0


def apply_chosen_action(world: WorldSnapshot, agent_id: str, decision: Optional[Decision]) -> WorldSnapshot:
    """
    Schedule the best action of ``decision`` as an event at ``world.tick + 1``. The input
    snapshot is left untouched; without a decision, or when the event already exists,
    the same snapshot is returned.
    """
    best = decision.best if decision is not None else None
    if best is None:
        return world

    at_tick = world.tick + 1
    event_id = f"act:{at_tick}:{agent_id}:{best.action_id}" + (f":{best.target_id}" if best.target_id else "")
    if any(e.id == event_id for e in world.events):
        logger.debug(f"event {event_id} already scheduled")
        return world

    tags = infer_tags(best.action_id)
    agent = world.agent(agent_id)
    event = WorldEvent(
        id=event_id,
        tick=at_tick,
        kind=tags[0],
        actor_id=agent_id,
        target_id=best.target_id,
        magnitude=clamp01(best.score),
        tags=tags,
        payload={
            "action_id": best.action_id,
            "candidate_id": best.id,
            "score": best.score,
            "polarity": infer_polarity(tags),
            "location_id": agent.location_id if agent is not None else None,
            "scheduled_from_tick": world.tick,
        },
    )
    logger.info(f"{agent_id} -> {event.kind}{' ' + event.target_id if event.target_id else ''} at t{at_tick}")
    return world.model_copy(update={"events": list(world.events) + [event]})
