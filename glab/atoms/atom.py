from enum import StrEnum
from typing import Any, Dict, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom_id import AtomId


class AtomOrigin(StrEnum):
    WORLD = "world"
    OBS = "obs"
    DERIVED = "derived"
    OVERRIDE = "override"
    BELIEF = "belief"
    MEMORY = "memory"


# conflict resolution between patches: higher wins
ORIGIN_RANK: Dict[AtomOrigin, int] = {
    AtomOrigin.OVERRIDE: 5,
    AtomOrigin.OBS: 4,
    AtomOrigin.WORLD: 3,
    AtomOrigin.BELIEF: 2,
    AtomOrigin.MEMORY: 1,
    AtomOrigin.DERIVED: 0,
}

# display / sort order, sources first
ORIGIN_SORT: Dict[AtomOrigin, int] = {
    AtomOrigin.WORLD: 1,
    AtomOrigin.OBS: 2,
    AtomOrigin.BELIEF: 3,
    AtomOrigin.MEMORY: 4,
    AtomOrigin.DERIVED: 5,
    AtomOrigin.OVERRIDE: 6,
}


class AtomNamespace(StrEnum):
    WORLD = "world"
    SCENE = "scene"
    NORM = "norm"
    OBS = "obs"
    FEAT = "feat"
    REL = "rel"
    EVENT = "event"
    BELIEF = "belief"
    CTX = "ctx"
    LENS = "lens"
    TOM = "tom"
    THREAT = "threat"
    APP = "app"
    EMO = "emo"
    DRV = "drv"
    ENER = "ener"
    GOAL = "goal"
    AFF = "aff"
    CON = "con"
    OFF = "off"
    ACTION = "action"
    CAP = "cap"
    MEMORY = "memory"
    MISC = "misc"


class NamespaceSpec(NamedTuple):
    lo: float
    hi: float
    stage: str
    description: str


NAMESPACE_SPECS: Dict[AtomNamespace, NamespaceSpec] = {
    AtomNamespace.WORLD: NamespaceSpec(0.0, 1.0, "S0", "world facts read from the snapshot"),
    AtomNamespace.SCENE: NamespaceSpec(0.0, 1.0, "S0", "scene level controls and metrics"),
    AtomNamespace.NORM: NamespaceSpec(0.0, 1.0, "S0", "norm and surveillance facts"),
    AtomNamespace.OBS: NamespaceSpec(0.0, 1.0, "S0", "observations of the agent"),
    AtomNamespace.FEAT: NamespaceSpec(0.0, 1.0, "S0", "character features, traits and body"),
    AtomNamespace.REL: NamespaceSpec(0.0, 1.0, "S0", "relationship base metrics"),
    AtomNamespace.EVENT: NamespaceSpec(0.0, 1.0, "S0", "recent events involving the agent"),
    AtomNamespace.BELIEF: NamespaceSpec(0.0, 1.0, "S0", "persisted belief atoms"),
    AtomNamespace.CTX: NamespaceSpec(0.0, 1.0, "S1", "context axes"),
    AtomNamespace.LENS: NamespaceSpec(0.0, 1.0, "S2", "character lens signals"),
    AtomNamespace.TOM: NamespaceSpec(0.0, 1.0, "S3", "theory of mind metrics and policy"),
    AtomNamespace.THREAT: NamespaceSpec(0.0, 1.0, "S4", "threat channels"),
    AtomNamespace.APP: NamespaceSpec(0.0, 1.0, "S5", "appraisals"),
    AtomNamespace.EMO: NamespaceSpec(0.0, 1.0, "S5", "emotions"),
    AtomNamespace.DRV: NamespaceSpec(0.0, 1.0, "S6", "drivers / needs"),
    AtomNamespace.ENER: NamespaceSpec(0.0, 1.0, "S6", "energy channels"),
    AtomNamespace.GOAL: NamespaceSpec(0.0, 1.0, "S6", "goal pressures and goal state"),
    AtomNamespace.AFF: NamespaceSpec(0.0, 1.0, "S7", "affordances"),
    AtomNamespace.CON: NamespaceSpec(0.0, 1.0, "S7", "constraints"),
    AtomNamespace.OFF: NamespaceSpec(0.0, 1.0, "S7", "offers"),
    AtomNamespace.ACTION: NamespaceSpec(0.0, 1.0, "S8", "scored action candidates"),
    AtomNamespace.CAP: NamespaceSpec(0.0, 1.0, "S0", "capabilities"),
    AtomNamespace.MEMORY: NamespaceSpec(0.0, 1.0, "S0", "memory derived facts"),
    AtomNamespace.MISC: NamespaceSpec(0.0, 1.0, "S0", "anything outside the known namespaces"),
}

# (ns, kind) pairs that carry a signed magnitude
SIGNED_KINDS = frozenset({
    (AtomNamespace.EMO, "valence"),
    (AtomNamespace.CTX, "valence"),
    (AtomNamespace.ACTION, "delta"),
})


def namespace_of(atom_id: str) -> AtomNamespace:
    ns = atom_id.split(":", 1)[0] if atom_id else ""
    try:
        return AtomNamespace(ns)
    except ValueError:
        return AtomNamespace.MISC


def magnitude_range(ns: AtomNamespace, kind: str) -> Tuple[float, float]:
    if (ns, kind) in SIGNED_KINDS:
        return -1.0, 1.0
    spec = NAMESPACE_SPECS[ns]
    return spec.lo, spec.hi


class AtomTrace(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    used_atom_ids: Tuple[str, ...] = Field(default=(), alias="usedAtomIds")
    notes: Tuple[str, ...] = ()
    parts: Dict[str, Any] = Field(default_factory=dict)


class Atom(BaseModel):
    """
    A single fact or signal. Immutable; use ``model_copy(update=...)`` to derive a
    changed copy.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    ns: AtomNamespace = AtomNamespace.MISC
    kind: str = ""
    origin: AtomOrigin = AtomOrigin.DERIVED
    source: str = ""
    magnitude: float = 0.0
    confidence: float = Field(default=1.0, description="0..1, secondary precedence tie-break")
    subject: Optional[str] = None
    target: Optional[str] = None
    code: str = ""
    label: str = ""
    tags: Tuple[str, ...] = ()
    trace: Optional[AtomTrace] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    @property
    def aid(self) -> AtomId:
        return AtomId.parse(self.id)

    @property
    def used_ids(self) -> Tuple[str, ...]:
        return self.trace.used_atom_ids if self.trace else ()
