"""
Energy propagation over the atom dependency graph.

Each signal field channel seeds energy on its source atoms. Per step every node keeps
``decay`` of its energy and pushes the rest in equal shares along its outgoing edges
(used -> derived). Sinks keep everything. Alongside the energy each node carries a
top-K map from seed atom id to the amount that came from it, so a goal or emotion node
can be explained by the facts that drive it.
"""
import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from glab import config_loader
from glab.graph.atom_graph import AtomGraph
from glab.signals.signal_field import SignalField
from glab.utils.math_utils import clamp01

logger = logging.getLogger(__name__)

EDGE_ARROW = "→"


class Attribution(BaseModel):
    atom_id: str
    amount: float


class ChannelConvergence(BaseModel):
    iterations: int
    converged: bool
    max_delta: float
    threshold: float


class EnergyResult(BaseModel):
    node_energy: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    edge_flow: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    attribution: Dict[str, Dict[str, List[Attribution]]] = Field(default_factory=dict)
    history: Optional[Dict[str, Dict[str, List[float]]]] = None
    convergence: Optional[Dict[str, ChannelConvergence]] = None

    def total(self, channel: str) -> float:
        return sum(self.node_energy.get(channel, {}).values())

    def top_nodes(self, channel: str, n: int = 5) -> List[tuple]:
        items = self.node_energy.get(channel, {}).items()
        return sorted(((k, v) for k, v in items if v > 0), key=lambda kv: (-kv[1], kv[0]))[:n]


def _merge_scaled_top_k(dst: Dict[str, float], src: Dict[str, float], scale: float, top_k: int) -> Dict[str, float]:
    if scale <= 0:
        return dst
    for k, v in src.items():
        add = v * scale
        if add > 0:
            dst[k] = dst.get(k, 0.0) + add
    if len(dst) <= top_k:
        return dst
    # ties broken by id so pruning never depends on dict order
    kept = sorted(dst.items(), key=lambda kv: (-kv[1], kv[0]))[:top_k]
    return dict(kept)


def _top_k_list(m: Dict[str, float], top_k: int) -> List[Attribution]:
    arr = sorted(((k, v) for k, v in m.items() if v > 0), key=lambda kv: (-kv[1], kv[0]))[:top_k]
    return [Attribution(atom_id=k, amount=v) for k, v in arr]


def propagate_atom_energy(
        graph: AtomGraph,
        field: SignalField,
        steps: Optional[int] = None,
        decay: Optional[float] = None,
        top_k: Optional[int] = None,
        convergence_threshold: float = 0.0,
        track_history: bool = False,
        history_node_ids: Optional[Sequence[str]] = None,
) -> EnergyResult:
    steps = config_loader.energy_steps if steps is None else steps
    decay = config_loader.energy_decay if decay is None else decay
    top_k = config_loader.energy_top_k if top_k is None else top_k

    steps = max(0, min(64, int(steps)))
    decay = clamp01(decay)
    top_k = max(1, min(24, int(top_k)))

    node_ids = list(graph.nodes)
    history_filter = set(history_node_ids) if history_node_ids else None
    result = EnergyResult(
        history={} if track_history else None,
        convergence={} if convergence_threshold > 0 else None,
    )

    for ch in sorted(field.channels):
        energy: Dict[str, float] = {n: 0.0 for n in node_ids}
        contrib: Dict[str, Dict[str, float]] = {n: {} for n in node_ids}
        edge_flow: Dict[str, float] = {}

        # ---- seed ----
        for src in field.channels[ch].sources:
            sid = src.atom_id
            if sid not in energy or src.weight <= 0:
                continue
            energy[sid] += src.weight
            contrib[sid][sid] = contrib[sid].get(sid, 0.0) + src.weight

        hist = None
        if track_history:
            hist = {n: [energy[n]] for n in node_ids if history_filter is None or n in history_filter}

        iterations = 0
        converged = False
        last_max_delta = 0.0

        # ---- diffuse ----
        for step in range(steps):
            next_e: Dict[str, float] = {n: 0.0 for n in node_ids}
            next_c: Dict[str, Dict[str, float]] = {n: {} for n in node_ids}

            for u in node_ids:
                e = energy[u]
                if e <= 0:
                    continue
                u_contrib = contrib[u]

                retained = e * decay
                if retained > 0:
                    next_e[u] += retained
                    next_c[u] = _merge_scaled_top_k(next_c[u], u_contrib, retained / e, top_k)

                injected = e * (1.0 - decay)
                if injected <= 0:
                    continue

                outs = graph.out.get(u, ())
                if not outs:
                    next_e[u] += injected
                    next_c[u] = _merge_scaled_top_k(next_c[u], u_contrib, injected / e, top_k)
                    continue

                share = injected / len(outs)
                for v in outs:
                    next_e[v] += share
                    next_c[v] = _merge_scaled_top_k(next_c[v], u_contrib, share / e, top_k)
                    key = f"{u}{EDGE_ARROW}{v}"
                    edge_flow[key] = edge_flow.get(key, 0.0) + share

            max_delta = max((abs(next_e[n] - energy[n]) for n in node_ids), default=0.0)
            energy, contrib = next_e, next_c
            if hist is not None:
                for n in hist:
                    hist[n].append(energy[n])

            iterations = step + 1
            last_max_delta = max_delta
            if convergence_threshold > 0 and max_delta < convergence_threshold:
                converged = True
                break

        result.node_energy[ch] = energy
        result.edge_flow[ch] = edge_flow
        result.attribution[ch] = {n: _top_k_list(contrib[n], top_k) for n in node_ids}
        if hist is not None:
            result.history[ch] = hist
        if result.convergence is not None:
            result.convergence[ch] = ChannelConvergence(
                iterations=iterations, converged=converged, max_delta=last_max_delta, threshold=convergence_threshold)

    logger.debug(f"Energy propagated over {len(node_ids)} nodes, {len(field.channels)} channels, {steps} steps")
    return result
