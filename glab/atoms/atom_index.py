from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from glab.atoms.atom import Atom, ORIGIN_SORT
from glab.atoms.atom_id import SEP


def dedupe_atoms_by_id(atoms: Iterable[Atom]) -> Tuple[Atom, ...]:
    """Last write wins. The surviving atom keeps the position of the first occurrence."""
    by_id: Dict[str, Atom] = {}
    for a in atoms:
        by_id[a.id] = a
    return tuple(by_id.values())


def sort_atoms_deterministic(atoms: Iterable[Atom]) -> Tuple[Atom, ...]:
    return tuple(sorted(atoms, key=lambda a: (ORIGIN_SORT.get(a.origin, 99), a.ns.value, a.kind, a.id)))


class AtomIndex:
    """
    Read-only view over an atom collection with id and prefix lookups.

    Replaces "scan for the first atom whose id starts with X": prefix queries return
    every match sorted by id, and single value lookups go through an explicit id.
    """

    def __init__(self, atoms: Iterable[Atom]):
        self._atoms: Tuple[Atom, ...] = dedupe_atoms_by_id(atoms)
        self._by_id: Dict[str, Atom] = {a.id: a for a in self._atoms}
        self._by_prefix: Dict[Tuple[str, ...], List[str]] = {}
        for a in self._atoms:
            segs = tuple(a.id.split(SEP))
            for n in range(1, len(segs)):
                self._by_prefix.setdefault(segs[:n], []).append(a.id)
        for ids in self._by_prefix.values():
            ids.sort()

    def __len__(self) -> int:
        return len(self._atoms)

    def __iter__(self) -> Iterator[Atom]:
        return iter(self._atoms)

    def __contains__(self, atom_id: str) -> bool:
        return atom_id in self._by_id

    @property
    def atoms(self) -> Tuple[Atom, ...]:
        return self._atoms

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._by_id.keys())

    def get(self, atom_id: str) -> Optional[Atom]:
        return self._by_id.get(atom_id)

    def get_mag(self, atom_id: str, fallback: float = 0.0) -> float:
        a = self._by_id.get(atom_id)
        return a.magnitude if a is not None else fallback

    def get_conf(self, atom_id: str, fallback: float = 0.0) -> float:
        a = self._by_id.get(atom_id)
        return a.confidence if a is not None else fallback

    def first_mag(self, candidates: Sequence[str], fallback: float = 0.0) -> Tuple[float, Optional[str]]:
        """Value of the first present id from an explicit, ordered candidate list."""
        for cid in candidates:
            a = self._by_id.get(cid)
            if a is not None:
                return a.magnitude, cid
        return fallback, None

    def by_prefix(self, prefix: str) -> Tuple[Atom, ...]:
        segs = tuple(prefix.rstrip(SEP).split(SEP))
        ids = list(self._by_prefix.get(segs, ()))
        if prefix.rstrip(SEP) in self._by_id:
            ids = sorted(set(ids) | {prefix.rstrip(SEP)})
        return tuple(self._by_id[i] for i in ids)

    def by_ns(self, ns: str) -> Tuple[Atom, ...]:
        return self.by_prefix(str(ns))

    def targets_of(self, prefix: str, subject: str) -> Tuple[str, ...]:
        """Sorted distinct targets of dyadic atoms under ``prefix`` whose subject is ``subject``."""
        out = set()
        for a in self.by_prefix(prefix):
            aid = a.aid
            if aid.subject == subject and aid.target and aid.target != subject:
                out.add(aid.target)
        return tuple(sorted(out))

    def reader(self) -> "TraceReader":
        return TraceReader(self)


class TraceReader:
    """
    Records every id a derivation reads, present or not, so the resulting atom's trace
    lists its full input set. Absent ids show up as missing references in the graph.
    """

    def __init__(self, index: AtomIndex):
        self.index = index
        self.used: List[str] = []

    def mag(self, atom_id: str, fallback: float = 0.0) -> float:
        self.used.append(atom_id)
        return self.index.get_mag(atom_id, fallback)

    def first(self, candidates: Sequence[str], fallback: float = 0.0) -> float:
        value, hit = self.index.first_mag(candidates, fallback)
        if hit is not None:
            self.used.append(hit)
        else:
            self.used.extend(candidates[:1])
        return value

    def has(self, atom_id: str) -> bool:
        return atom_id in self.index

    def take(self) -> List[str]:
        used, self.used = self.used, []
        return used
