"""
Combining atom collections.

Two strategies exist. ``merge_newer_wins`` backs the stage barrier of the pipeline: the
newer stage output replaces anything with the same id, whatever its origin. Patches from
orchestrator producers go through ``merge_by_precedence`` / ``apply_patch`` where origin
rank decides, then confidence, then a string tie-break on ``id|code|source``.

Inputs are never mutated; every function returns a new tuple.
"""
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from glab.atoms.atom import Atom, ORIGIN_RANK


class MergeResult(NamedTuple):
    atoms: Tuple[Atom, ...]
    added_ids: Tuple[str, ...]
    overridden_ids: Tuple[str, ...]


def precedence_key(atom: Atom) -> Tuple[int, float, str]:
    return ORIGIN_RANK.get(atom.origin, 0), atom.confidence, f"{atom.id}|{atom.code}|{atom.source}"


def wins_over(candidate: Atom, existing: Atom) -> bool:
    """True if ``candidate`` should replace ``existing`` for the same id. Equal keys keep the existing atom."""
    return precedence_key(candidate) > precedence_key(existing)


def merge_newer_wins(base: Iterable[Atom], added: Iterable[Atom]) -> MergeResult:
    out = {a.id: a for a in base}
    added_ids: List[str] = []
    overridden: List[str] = []
    for a in added:
        if a.id in out:
            if a.id not in overridden and a.id not in added_ids:
                overridden.append(a.id)
        elif a.id not in added_ids:
            added_ids.append(a.id)
        out[a.id] = a
    return MergeResult(tuple(out.values()), tuple(added_ids), tuple(overridden))


def merge_by_precedence(base: Iterable[Atom], added: Iterable[Atom]) -> MergeResult:
    out = {a.id: a for a in base}
    added_ids: List[str] = []
    overridden: List[str] = []
    for a in added:
        cur = out.get(a.id)
        if cur is None:
            out[a.id] = a
            added_ids.append(a.id)
        elif wins_over(a, cur):
            out[a.id] = a
            if a.id not in overridden and a.id not in added_ids:
                overridden.append(a.id)
    return MergeResult(tuple(out.values()), tuple(added_ids), tuple(overridden))


class Patch(BaseModel):
    model_config = ConfigDict(frozen=True)

    add: Tuple[Atom, ...] = ()
    update: Tuple[Atom, ...] = ()
    remove: Tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not (self.add or self.update or self.remove)


class AtomChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    op: str  # add | update | remove
    before: Optional[Atom] = None
    after: Optional[Atom] = None

    @property
    def delta(self) -> float:
        b = self.before.magnitude if self.before is not None else 0.0
        a = self.after.magnitude if self.after is not None else 0.0
        return a - b


class PatchOutcome(NamedTuple):
    atoms: Tuple[Atom, ...]
    changes: Tuple[AtomChange, ...]


def _may_update(candidate: Atom, existing: Atom) -> bool:
    return ORIGIN_RANK.get(candidate.origin, 0) >= ORIGIN_RANK.get(existing.origin, 0)


def apply_patch(atoms: Sequence[Atom], patch: Patch) -> PatchOutcome:
    """
    Apply one patch.

    An ``add`` that collides with an existing id competes by full precedence (origin
    rank, confidence, id|code|source). An ``update`` replaces the existing atom when its
    origin rank is at least as high, so a producer may refresh its own derived atoms but
    never a fact of stronger origin. Updating an absent id behaves like an add and
    removing an absent id does nothing. Removals run after adds and updates.
    """
    out = {a.id: a for a in atoms}
    changes: List[AtomChange] = []

    def put(a: Atom, allowed) -> None:
        cur = out.get(a.id)
        if cur is None:
            out[a.id] = a
            changes.append(AtomChange(id=a.id, op="add", after=a))
        elif cur != a and allowed(a, cur):
            out[a.id] = a
            changes.append(AtomChange(id=a.id, op="update", before=cur, after=a))

    for a in patch.add:
        put(a, wins_over)
    for a in patch.update:
        put(a, _may_update)

    for rid in patch.remove:
        cur = out.pop(rid, None)
        if cur is not None:
            changes.append(AtomChange(id=rid, op="remove", before=cur))

    return PatchOutcome(tuple(out.values()), tuple(changes))
