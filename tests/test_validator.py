from glab.atoms.atom import Atom, AtomNamespace, AtomOrigin, AtomTrace
from glab.atoms.normalize import make_derived, make_fact
from glab.validation.validator import IssueCode, Severity, check_atom_invariants, validate_atoms


def raw(aid, mag=0.5, used=None, origin=AtomOrigin.DERIVED, ns=AtomNamespace.CTX, kind="danger", conf=1.0):
    trace = AtomTrace(used_atom_ids=tuple(used)) if used is not None else None
    return Atom(id=aid, ns=ns, kind=kind, origin=origin, magnitude=mag, confidence=conf, trace=trace)


def test_clean_set_is_ok(chain_atoms):
    report = validate_atoms(chain_atoms)
    assert report.ok
    assert report.issues == []
    assert len(report.atoms) == len(chain_atoms)


def test_self_reference_is_stripped_when_autofixing():
    bad = raw("ctx:danger:A", used=["ctx:danger:A", "world:map:danger:A"])
    report = validate_atoms([bad])
    issues = report.by_code(IssueCode.SELF_REFERENCE)
    assert len(issues) == 1 and issues[0].severity == Severity.ERROR and issues[0].fixed
    assert report.atoms[0].used_ids == ("world:map:danger:A",)
    assert report.ok


def test_no_autofix_reports_but_keeps_atoms():
    bad = raw("ctx:danger:A", used=["ctx:danger:A"])
    report = validate_atoms([bad], autofix=False)
    assert not report.ok
    assert report.atoms[0].used_ids == ("ctx:danger:A",)


def test_non_finite_and_out_of_range():
    report = validate_atoms([
        raw("ctx:danger:A", mag=float("nan"), used=["world:map:danger:A"]),
        raw("ctx:crowd:A", mag=1.7, used=["scene:crowd:A"], kind="crowd"),
    ])
    m = {a.id: a for a in report.atoms}
    assert m["ctx:danger:A"].magnitude == 0.0
    assert m["ctx:crowd:A"].magnitude == 1.0
    assert report.by_code(IssueCode.NON_FINITE)[0].severity == Severity.ERROR
    assert report.by_code(IssueCode.OUT_OF_RANGE)[0].severity == Severity.WARN


def test_missing_trace_is_an_unfixed_error():
    report = validate_atoms([raw("ctx:danger:A", used=None)])
    assert not report.ok
    assert report.by_code(IssueCode.MISSING_TRACE)
    # facts need no trace
    assert validate_atoms([make_fact("world:map:danger:A", 0.4)]).ok


def test_duplicates_collapse_last_write_wins():
    report = validate_atoms([make_fact("ctx:danger:A", 0.1), make_fact("ctx:danger:A", 0.9)])
    assert report.by_code(IssueCode.DUPLICATE_ID)[0].severity == Severity.WARN
    assert [a.magnitude for a in report.atoms] == [0.9]


def test_cycle_is_an_error():
    a = make_derived("x:a:A", 0.5, ["x:b:A"])
    b = make_derived("x:b:A", 0.5, ["x:a:A"])
    report = validate_atoms([a, b])
    assert not report.ok
    assert "x:a:A" in report.by_code(IssueCode.CYCLE)[0].message


def test_invariant_check_is_read_only():
    bad = raw("ctx:danger:A", used=["ctx:danger:A"])
    report = check_atom_invariants([bad, bad])
    codes = {i.code for i in report.issues}
    assert codes == {IssueCode.SELF_REFERENCE, IssueCode.DUPLICATE_ID}
    assert bad.used_ids == ("ctx:danger:A",)
