from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from glab.atoms.atom import Atom
from glab.utils.math_utils import clamp01

KNOWN_CHANNELS: Tuple[str, ...] = (
    "threat",
    "uncertainty",
    "norm",
    "attachment",
    "resource",
    "status",
    "curiosity",
    "base",
)

ChannelMap = Mapping[str, float]

DRIVER_TO_CHANNEL: Dict[str, ChannelMap] = {
    "safetyNeed": {"threat": 1.0},
    "controlNeed": {"uncertainty": 0.75, "threat": 0.25},
    "statusNeed": {"status": 1.0, "norm": 0.25},
    "affiliationNeed": {"attachment": 1.0},
    "restNeed": {"resource": 1.0},
    "curiosityNeed": {"curiosity": 1.0, "uncertainty": 0.15},
    "resolveNeed": {"norm": 0.35, "threat": 0.15, "uncertainty": 0.25},
}

CTX_TO_CHANNEL: Dict[str, ChannelMap] = {
    "danger": {"threat": 1.0},
    "threat": {"threat": 1.0},
    "hostility": {"threat": 0.75, "uncertainty": 0.25},
    "uncertainty": {"uncertainty": 1.0},
    "scarcity": {"resource": 0.85, "threat": 0.15},
    "timePressure": {"threat": 0.35, "resource": 0.35, "uncertainty": 0.25},
    "normPressure": {"norm": 1.0},
    "hierarchy": {"status": 0.75, "norm": 0.35},
    "publicness": {"status": 0.6, "norm": 0.4},
    "surveillance": {"norm": 0.65, "threat": 0.15, "status": 0.15},
    "privacy": {"attachment": 0.25, "threat": 0.15},
    "intimacy": {"attachment": 0.85},
    "crowd": {"norm": 0.25, "threat": 0.25, "uncertainty": 0.25},
    "novelty": {"curiosity": 0.75, "uncertainty": 0.25},
    "grief": {"attachment": 0.25, "threat": 0.25},
    "control": {"uncertainty": 0.45, "threat": 0.25},
}

CAP_TO_CHANNEL: Dict[str, ChannelMap] = {
    "fatigue": {"resource": 1.0},
    "hunger": {"resource": 0.75},
    "thirst": {"resource": 0.75},
    "pain": {"resource": 0.35, "threat": 0.15},
}

# namespaces whose metric may directly name a channel
DIRECT_NAMESPACES = ("obs", "app", "emo")


class SignalSource(BaseModel):
    atom_id: str
    weight: float


class SignalChannel(BaseModel):
    name: str
    raw_value: float = 0.0
    sources: List[SignalSource] = Field(default_factory=list)

    @property
    def weights(self) -> List[float]:
        return [s.weight for s in self.sources]


class SignalField(BaseModel):
    self_id: str
    channels: Dict[str, SignalChannel] = Field(default_factory=dict)

    def value(self, channel: str) -> float:
        ch = self.channels.get(channel)
        return ch.raw_value if ch else 0.0


def atom_weight(a: Atom) -> float:
    return clamp01(a.magnitude) * clamp01(a.confidence)


def _channel_map_for(a: Atom, self_id: str) -> Optional[ChannelMap]:
    segs = a.id.split(":")
    if len(segs) < 3 or segs[2] != self_id:
        return None
    ns, key = segs[0], segs[1]
    if ns in DIRECT_NAMESPACES:
        return {key: 1.0} if key in KNOWN_CHANNELS else None
    if ns == "drv":
        return DRIVER_TO_CHANNEL.get(key)
    if ns == "ctx":
        # raw scene controls are inputs, not stable axes
        if key == "src":
            return None
        return CTX_TO_CHANNEL.get(key)
    if ns == "cap":
        return CAP_TO_CHANNEL.get(key)
    return None


def build_signal_field(self_id: str, atoms: Iterable[Atom]) -> SignalField:
    """
    Group the agent's atoms into the known energy channels. Every channel exists in
    the result, and raw values are clamped to 0..1.
    """
    sums: Dict[str, float] = {ch: 0.0 for ch in KNOWN_CHANNELS}
    sources: Dict[str, List[SignalSource]] = {ch: [] for ch in KNOWN_CHANNELS}

    for a in sorted(atoms, key=lambda x: x.id):
        if not a.id:
            continue
        m = _channel_map_for(a, self_id)
        if not m:
            continue
        w0 = atom_weight(a)
        if w0 <= 0:
            continue
        for ch in sorted(m):
            k = float(m[ch])
            if ch not in sums or k == 0:
                continue
            w = w0 * k
            sums[ch] += w
            sources[ch].append(SignalSource(atom_id=a.id, weight=w))

    return SignalField(
        self_id=self_id,
        channels={ch: SignalChannel(name=ch, raw_value=clamp01(sums[ch]), sources=sources[ch]) for ch in KNOWN_CHANNELS},
    )
