from typing import Dict, Iterable, Mapping, NamedTuple, Tuple

from glab.utils.math_utils import clamp01


class SelectionResult(NamedTuple):
    active: Tuple[str, ...]
    ranking: Tuple[str, ...]
    effective: Dict[str, float]
    bonus: Dict[str, float]
    lead: Dict[str, float]


def select_active_goals(
        scores: Mapping[str, float],
        prev_active: Iterable[str],
        lock_in: Mapping[str, float],
        top_n: int,
        margin: float,
) -> SelectionResult:
    """
    Hysteretic top-N selection.

    A previously active domain gets ``margin * (1 + lockIn)`` on top of its score, so a
    challenger has to beat it by more than that bonus to take its slot. Ranking is by
    effective score, then domain name. ``lead`` is the distance of each selected
    domain to the best excluded one (negative for excluded domains).
    """
    prev = set(prev_active)
    bonus = {d: (margin * (1.0 + clamp01(lock_in.get(d, 0.0))) if d in prev else 0.0) for d in scores}
    effective = {d: clamp01(scores[d]) + bonus[d] for d in scores}

    ranking = tuple(sorted(effective, key=lambda d: (-effective[d], d)))
    n = max(0, min(int(top_n), len(ranking)))
    active = ranking[:n]
    excluded = ranking[n:]

    best_excluded = effective[excluded[0]] if excluded else 0.0
    worst_active = effective[active[-1]] if active else 0.0
    lead = {}
    for d in ranking:
        lead[d] = effective[d] - best_excluded if d in active else effective[d] - worst_active

    return SelectionResult(active, ranking, effective, bonus, lead)
