import logging
import math
from enum import StrEnum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from glab.atoms.atom import Atom, AtomOrigin, magnitude_range
from glab.atoms.normalize import MISSING_TRACE_NOTE, sanitize_used_ids
from glab.graph.atom_graph import build_atom_graph, topo_sort
from glab.utils.math_utils import clamp

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


class IssueCode(StrEnum):
    MISSING_ID = "missing_id"
    DUPLICATE_ID = "duplicate_id"
    NON_FINITE = "non_finite"
    OUT_OF_RANGE = "out_of_range"
    SELF_REFERENCE = "self_reference"
    MISSING_TRACE = "missing_trace"
    CYCLE = "cycle"


class ValidationIssue(BaseModel):
    severity: Severity
    code: IssueCode
    atom_id: Optional[str] = None
    message: str
    fixed: bool = False


class ValidationReport(BaseModel):
    ok: bool = True
    issues: List[ValidationIssue] = Field(default_factory=list)
    atoms: Tuple[Atom, ...] = ()
    counts: Dict[str, int] = Field(default_factory=lambda: {s.value: 0 for s in Severity})

    def by_code(self, code: IssueCode) -> List[ValidationIssue]:
        return [i for i in self.issues if i.code == code]

    def add(self, issue: ValidationIssue):
        self.issues.append(issue)
        self.counts[issue.severity.value] = self.counts.get(issue.severity.value, 0) + 1
        if issue.severity == Severity.ERROR and not issue.fixed:
            self.ok = False


def _missing_provenance(a: Atom) -> bool:
    if a.trace is None:
        return True
    return not a.trace.used_atom_ids or MISSING_TRACE_NOTE in a.trace.notes


def _check_atom(a: Atom, report: ValidationReport, autofix: bool) -> Optional[Atom]:
    """Check one atom; returns the (possibly fixed) atom, or None if it must be dropped."""
    if not a.id:
        report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.MISSING_ID,
                                   message="atom without id", fixed=autofix))
        return None if autofix else a

    update = {}
    lo, hi = magnitude_range(a.ns, a.kind)
    for field, flo, fhi in (("magnitude", lo, hi), ("confidence", 0.0, 1.0)):
        v = getattr(a, field)
        if not math.isfinite(v):
            report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.NON_FINITE, atom_id=a.id,
                                       message=f"{field} is not finite", fixed=autofix))
            update[field] = 0.0
        elif v < flo or v > fhi:
            report.add(ValidationIssue(severity=Severity.WARN, code=IssueCode.OUT_OF_RANGE, atom_id=a.id,
                                       message=f"{field}={v:.4f} outside [{flo}, {fhi}]", fixed=autofix))
            update[field] = clamp(v, flo, fhi)

    if a.trace is not None and a.id in a.trace.used_atom_ids:
        report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.SELF_REFERENCE, atom_id=a.id,
                                   message="trace.usedAtomIds contains the atom itself", fixed=autofix))
        update["trace"] = a.trace.model_copy(update={"used_atom_ids": sanitize_used_ids(a.id, a.trace.used_atom_ids)})

    if a.origin == AtomOrigin.DERIVED and _missing_provenance(a):
        # cannot be fixed: inventing provenance would hide the bug
        report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.MISSING_TRACE, atom_id=a.id,
                                   message="derived atom without provenance"))

    if autofix and update:
        return a.model_copy(update=update)
    return a


def validate_atoms(atoms: Iterable[Atom], autofix: bool = True, check_cycles: bool = True,
                   cycle_sample_size: Optional[int] = None) -> ValidationReport:
    """
    Structural validation of an atom collection. Never raises.

    With ``autofix`` the report carries a repaired collection: atoms without id are
    dropped, duplicates collapse last-write-wins, non-finite values become 0, out of
    range values are clamped and self references are stripped. Missing provenance and
    cycles are reported but not repaired.
    """
    report = ValidationReport()
    atoms = tuple(atoms)

    seen: Dict[str, int] = {}
    for a in atoms:
        if a.id:
            seen[a.id] = seen.get(a.id, 0) + 1
    for aid in sorted(k for k, n in seen.items() if n > 1):
        report.add(ValidationIssue(severity=Severity.WARN, code=IssueCode.DUPLICATE_ID, atom_id=aid,
                                   message=f"id occurs {seen[aid]} times, last write wins", fixed=autofix))

    checked: List[Atom] = []
    for a in atoms:
        fixed = _check_atom(a, report, autofix)
        if fixed is not None:
            checked.append(fixed)

    if autofix:
        by_id: Dict[str, Atom] = {}
        for a in checked:
            by_id[a.id] = a
        checked = list(by_id.values())

    if check_cycles:
        topo = topo_sort(build_atom_graph(checked), cycle_sample_size)
        if not topo.ok:
            report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.CYCLE,
                                       atom_id=topo.cycle_sample[0] if topo.cycle_sample else None,
                                       message=f"dependency cycle among: {', '.join(topo.cycle_sample)}"))

    report.atoms = tuple(checked)
    for issue in report.issues:
        if issue.severity == Severity.ERROR:
            logger.warning(f"validation {issue.code}: {issue.atom_id} {issue.message}")
    return report


def check_atom_invariants(atoms: Iterable[Atom]) -> ValidationReport:
    """Read-only invariant check: self references, missing trace on derived atoms, duplicates."""
    report = ValidationReport()
    seen = set()
    for a in atoms:
        if a.id in seen:
            report.add(ValidationIssue(severity=Severity.WARN, code=IssueCode.DUPLICATE_ID, atom_id=a.id,
                                       message="duplicate id"))
        seen.add(a.id)
        if a.trace is not None and a.id in a.trace.used_atom_ids:
            report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.SELF_REFERENCE, atom_id=a.id,
                                       message="trace.usedAtomIds contains the atom itself"))
        if a.origin == AtomOrigin.DERIVED and _missing_provenance(a):
            report.add(ValidationIssue(severity=Severity.ERROR, code=IssueCode.MISSING_TRACE, atom_id=a.id,
                                       message="derived atom without provenance"))
    return report
