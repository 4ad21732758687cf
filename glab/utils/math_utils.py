import math
from typing import Dict, Iterable, Mapping, Sequence

import numpy as np


def _finite(x, fallback: float = 0.0) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return fallback
    return v if math.isfinite(v) else fallback


def clamp01(x) -> float:
    return float(min(1.0, max(0.0, _finite(x))))


def clamp11(x) -> float:
    return float(min(1.0, max(-1.0, _finite(x))))


def clamp(x, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, _finite(x))))


def centered(x) -> float:
    """Map [0,1] onto [-1,1]."""
    return 2.0 * clamp01(x) - 1.0


def sigmoid(x: float) -> float:
    x = _finite(x)
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def logit(p: float, eps: float = 1e-6) -> float:
    p = min(1.0 - eps, max(eps, _finite(p, 0.5)))
    return math.log(p / (1.0 - p))


def inv_logit(x: float) -> float:
    return sigmoid(x)


def noisy_or(values: Iterable[float]) -> float:
    prod = 1.0
    for v in values:
        prod *= 1.0 - clamp01(v)
    return clamp01(1.0 - prod)


def softmax(scores: Sequence[float], temperature: float = 1.0) -> np.ndarray:
    arr = np.asarray([_finite(s) for s in scores], dtype=float)
    if arr.size == 0:
        return arr
    t = max(1e-6, _finite(temperature, 1.0))
    z = (arr - arr.max()) / t
    e = np.exp(z)
    return e / e.sum()


def softmax_map(scores: Mapping[str, float], temperature: float = 1.0) -> Dict[str, float]:
    """Softmax over a keyed map; keys are sorted so the result never depends on insertion order."""
    keys = sorted(scores.keys())
    probs = softmax([scores[k] for k in keys], temperature)
    return {k: float(p) for k, p in zip(keys, probs)}


def entropy01(probs: Sequence[float]) -> float:
    """Shannon entropy normalised by log(n)."""
    arr = np.asarray([max(0.0, _finite(p)) for p in probs], dtype=float)
    if arr.size <= 1 or arr.sum() <= 0:
        return 0.0
    arr = arr / arr.sum()
    nz = arr[arr > 0]
    return float(-(nz * np.log(nz)).sum() / math.log(arr.size))


def binary_entropy(p: float) -> float:
    """Entropy of a Bernoulli(p) in nats; divide by log(2) for bits."""
    p = clamp01(p)
    if p <= 0.0 or p >= 1.0:
        return 0.0
    return -(p * math.log(p) + (1.0 - p) * math.log(1.0 - p))


def weighted_mean(pairs: Iterable[tuple]) -> float:
    """Mean of (value, weight) pairs; 0 when all weights are 0."""
    num = den = 0.0
    for v, w in pairs:
        num += _finite(v) * w
        den += w
    return num / den if den > 0 else 0.0
