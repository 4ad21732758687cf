import logging
from collections import deque
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field

from glab import config_loader
from glab.atoms.atom import Atom

logger = logging.getLogger(__name__)


class AtomGraph(NamedTuple):
    """Edges run dependency -> derived atom (usedAtomId -> atomId)."""
    nodes: Tuple[str, ...]
    out: Dict[str, Tuple[str, ...]]
    into: Dict[str, Tuple[str, ...]]
    missing: Tuple[str, ...]

    @property
    def edge_count(self) -> int:
        return sum(len(v) for v in self.out.values())


class TopoResult(NamedTuple):
    ok: bool
    order: Tuple[str, ...]
    cycle_sample: Tuple[str, ...]


class AtomGraphSummary(BaseModel):
    nodes: int = 0
    edges: int = 0
    missing_refs: int = 0
    topo_ok: bool = True
    cycle_sample: List[str] = Field(default_factory=list)
    max_out: int = 0
    max_out_id: Optional[str] = None
    max_in: int = 0
    max_in_id: Optional[str] = None


def build_atom_graph(atoms: Iterable[Atom], include_isolated: bool = True) -> AtomGraph:
    atoms = tuple(atoms)
    present = {a.id for a in atoms if a.id}
    out: Dict[str, set] = {}
    into: Dict[str, set] = {}
    missing = set()

    for a in atoms:
        if not a.id:
            continue
        for u in a.used_ids:
            if not u or u == a.id:
                continue
            if u not in present:
                missing.add(u)
                continue
            out.setdefault(u, set()).add(a.id)
            into.setdefault(a.id, set()).add(u)

    if include_isolated:
        nodes = sorted(present)
    else:
        nodes = sorted(set(out) | set(into))

    return AtomGraph(
        nodes=tuple(nodes),
        out={k: tuple(sorted(out.get(k, ()))) for k in nodes},
        into={k: tuple(sorted(into.get(k, ()))) for k in nodes},
        missing=tuple(sorted(missing)),
    )


def topo_sort(graph: AtomGraph, cycle_sample_size: Optional[int] = None) -> TopoResult:
    """
    Kahn's algorithm. The ready queue is seeded in sorted node order and children are
    visited in sorted order, so the result is reproducible. When nodes remain after the
    queue drains there is a cycle; a bounded sample of the leftover ids is reported.
    """
    if cycle_sample_size is None:
        cycle_sample_size = config_loader.cycle_sample_size
    sample_n = max(3, min(64, int(cycle_sample_size)))

    indeg = {n: len(graph.into.get(n, ())) for n in graph.nodes}
    queue = deque(n for n in graph.nodes if indeg[n] == 0)
    order: List[str] = []

    while queue:
        n = queue.popleft()
        order.append(n)
        for m in graph.out.get(n, ()):
            indeg[m] -= 1
            if indeg[m] == 0:
                queue.append(m)

    if len(order) == len(graph.nodes):
        return TopoResult(True, tuple(order), ())

    stuck = [n for n in graph.nodes if indeg[n] > 0]
    logger.warning(f"Atom graph has a cycle, {len(stuck)} nodes unresolved")
    return TopoResult(False, tuple(order), tuple(stuck[:sample_n]))


def summarize_atom_graph(graph: AtomGraph, cycle_sample_size: Optional[int] = None) -> AtomGraphSummary:
    topo = topo_sort(graph, cycle_sample_size)

    max_out, max_out_id = 0, None
    max_in, max_in_id = 0, None
    for n in graph.nodes:
        o = len(graph.out.get(n, ()))
        i = len(graph.into.get(n, ()))
        if o > max_out:
            max_out, max_out_id = o, n
        if i > max_in:
            max_in, max_in_id = i, n

    return AtomGraphSummary(
        nodes=len(graph.nodes),
        edges=graph.edge_count,
        missing_refs=len(graph.missing),
        topo_ok=topo.ok,
        cycle_sample=list(topo.cycle_sample),
        max_out=max_out,
        max_out_id=max_out_id,
        max_in=max_in,
        max_in_id=max_in_id,
    )
