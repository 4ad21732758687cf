"""
Structured atom identifiers.

Atom ids are colon-delimited, namespace first: ``ctx:danger:A``,
``tom:dyad:A:B:trust``, ``emo:dyad:fearOf:A:B``. External tooling matches on these
strings by prefix, so the serialized form is fixed. Inside the package ids are built and
inspected through ``AtomId`` so that nobody slices strings by hand.

Each known prefix belongs to an ``IdFamily`` that names the role of every segment after
the prefix. Roles starting with ``@`` are literal segments filled in automatically.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

SEP = ":"

# roles that may be left out when they are trailing
OPTIONAL_ROLES = frozenset({"target", "qualifier"})


@dataclass(frozen=True)
class IdFamily:
    prefix: Tuple[str, ...]
    roles: Tuple[str, ...]

    @property
    def key(self) -> str:
        return SEP.join(self.prefix)


def _fam(prefix: str, *roles: str) -> IdFamily:
    return IdFamily(tuple(prefix.split(SEP)), tuple(roles))


DEFAULT_ROLES = ("metric", "subject", "target")

FAMILIES: Dict[str, IdFamily] = {f.key: f for f in (
    _fam("tom:dyad", "subject", "target", "metric"),
    _fam("tom:effective:dyad", "subject", "target", "metric"),
    _fam("tom:predict", "subject", "target", "metric"),
    _fam("tom:att", "subject", "target", "metric"),
    _fam("tom:help", "subject", "target", "metric"),
    _fam("tom:afford", "subject", "target", "@action", "metric", "qualifier"),
    _fam("tom:mode", "subject"),
    _fam("rel:base", "subject", "target", "metric"),
    _fam("emo:dyad", "metric", "subject", "target"),
    _fam("feat:char", "subject", "metric"),
    _fam("goal:domain", "metric", "subject"),
    _fam("goal:active", "metric", "subject"),
    _fam("goal:mode", "metric", "subject"),
    _fam("goal:lifeDomain", "metric", "subject"),
    _fam("goal:state", "metric", "subject", "qualifier"),
    _fam("ener:raw", "metric", "subject"),
    _fam("ener:felt", "metric", "subject"),
    _fam("ener:state", "metric", "subject"),
    _fam("world:loc", "metric", "subject"),
    _fam("world:map", "metric", "subject"),
    _fam("world:tick"),
    _fam("scene:id", "metric", "subject"),
    _fam("ctx:src", "group", "metric", "subject"),
    _fam("rel:tag", "subject", "target", "metric"),
    _fam("obs:los", "subject", "target"),
    _fam("obs:audio", "subject", "target"),
    _fam("obs:nearby", "subject", "target"),
    _fam("event:recent", "metric", "subject", "target"),
    _fam("threat:dyad", "subject", "target"),
)}


def family_for(segments: Tuple[str, ...]) -> IdFamily:
    """Longest registered prefix wins; unknown prefixes use ns:metric:subject[:target]."""
    for n in range(min(len(segments), 3), 0, -1):
        fam = FAMILIES.get(SEP.join(segments[:n]))
        if fam is not None:
            return fam
    return IdFamily(segments[:1], DEFAULT_ROLES)


@dataclass(frozen=True, order=True)
class AtomId:
    segments: Tuple[str, ...]

    @classmethod
    def parse(cls, text: str, strict: bool = False) -> "AtomId":
        if not isinstance(text, str) or not text:
            raise ValueError(f"atom id must be a non-empty string, got {text!r}")
        segs = tuple(text.split(SEP))
        if strict and any(s == "" for s in segs):
            raise ValueError(f"atom id {text!r} has an empty segment")
        return cls(segs)

    @classmethod
    def build(cls, prefix: str, **roles: Optional[str]) -> "AtomId":
        """
        Build an id for a family prefix, e.g.
        ``AtomId.build("tom:dyad", subject="A", target="B", metric="trust")``.
        Prefixes that are not registered families are treated as a namespace using the
        default roles.
        """
        fam = FAMILIES.get(prefix)
        if fam is None:
            fam = IdFamily(tuple(prefix.split(SEP)), DEFAULT_ROLES)
        unknown = set(roles) - {r for r in fam.roles if not r.startswith("@")}
        if unknown:
            raise ValueError(f"unknown role(s) {sorted(unknown)} for family {fam.key}")

        segs = list(fam.prefix)
        tail: list = []
        for role in fam.roles:
            if role.startswith("@"):
                tail.append(role[1:])
                continue
            value = roles.get(role)
            if value is None or value == "":
                if role in OPTIONAL_ROLES:
                    tail.append(None)
                    continue
                raise ValueError(f"missing role '{role}' for family {fam.key}")
            tail.append(str(value))

        # optional roles may only be dropped from the end
        while tail and tail[-1] is None:
            tail.pop()
        if any(t is None for t in tail):
            raise ValueError(f"optional role left out before a filled one in family {fam.key}")
        return cls(tuple(segs + tail))

    def serialize(self) -> str:
        return SEP.join(self.segments)

    def __str__(self) -> str:
        return self.serialize()

    @property
    def ns(self) -> str:
        return self.segments[0] if self.segments else ""

    @property
    def family(self) -> IdFamily:
        return family_for(self.segments)

    def role(self, name: str) -> Optional[str]:
        fam = self.family
        rest = self.segments[len(fam.prefix):]
        for role, seg in zip(fam.roles, rest):
            if role == name:
                return seg
        return None

    @property
    def subject(self) -> Optional[str]:
        return self.role("subject")

    @property
    def target(self) -> Optional[str]:
        return self.role("target")

    @property
    def metric(self) -> Optional[str]:
        return self.role("metric")

    @property
    def kind(self) -> str:
        """Second segment; the coarse kind inside a namespace."""
        return self.segments[1] if len(self.segments) > 1 else ""

    def starts_with(self, prefix: "str | AtomId") -> bool:
        """Segment-wise prefix test: ``ctx:dan`` does not match ``ctx:danger:A``."""
        p = prefix.segments if isinstance(prefix, AtomId) else tuple(prefix.rstrip(SEP).split(SEP))
        return self.segments[:len(p)] == p


def atom_id(prefix: str, **roles: Optional[str]) -> str:
    """Shorthand for ``AtomId.build(prefix, **roles).serialize()``."""
    return AtomId.build(prefix, **roles).serialize()
