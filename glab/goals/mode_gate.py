"""
Mixture-of-experts mode gate.

Five latent modes are scored from felt energy channels, turned into weights with a
softmax, and every goal domain is biased by the weighted mode -> domain affinity.
"""
from typing import Dict, Mapping, NamedTuple, Optional, Tuple

from glab import config_loader
from glab.utils.math_utils import clamp01, softmax_map

MODES: Tuple[str, ...] = ("threat", "social", "explore", "resource", "care")

# mode -> domain affinity, rows max out at 1
MODE_DOMAIN_BIAS: Dict[str, Dict[str, float]] = {
    "threat": {"safety": 1.0, "control": 0.6, "rest": 0.2},
    "social": {"status": 1.0, "affiliation": 0.5, "order": 0.4},
    "explore": {"exploration": 1.0, "wealth": 0.3},
    "resource": {"rest": 0.8, "wealth": 0.8, "control": 0.2},
    "care": {"affiliation": 1.0, "safety": 0.3},
}


class ModeGate(NamedTuple):
    scores: Dict[str, float]
    weights: Dict[str, float]
    temperature: float


def score_modes(felt: Mapping[str, float]) -> Dict[str, float]:
    f = lambda ch: clamp01(felt.get(ch, 0.0))
    return {
        "threat": clamp01(0.70 * f("threat") + 0.30 * f("uncertainty")),
        "social": clamp01(0.50 * f("status") + 0.30 * f("norm") + 0.20 * f("attachment")),
        "explore": clamp01(0.75 * f("curiosity") + 0.25 * (1.0 - f("threat"))),
        "resource": clamp01(0.80 * f("resource") + 0.20 * f("base")),
        "care": clamp01(0.80 * f("attachment") + 0.20 * (1.0 - f("threat"))),
    }


def gate_modes(felt: Mapping[str, float], temperature: Optional[float] = None) -> ModeGate:
    t = config_loader.goal_mode_temperature if temperature is None else temperature
    scores = score_modes(felt)
    return ModeGate(scores, softmax_map(scores, t), float(t))


def domain_bias(weights: Mapping[str, float], domain: str) -> float:
    return clamp01(sum(w * MODE_DOMAIN_BIAS.get(m, {}).get(domain, 0.0) for m, w in weights.items()))


def apply_mode_bias(base: float, bias: float) -> float:
    """Neutral bias 0.5 leaves the score unchanged; 0 damps by 25%, 1 boosts by 25%."""
    return clamp01(base * (0.75 + 0.5 * bias))
