"""Semantic version constraint parsing and evaluation.

Supported syntax (node-semver flavoured, as used by ArgoCD ``targetRevision``):

* exact versions: ``1.2.3``, ``v1.2.3``
* caret ranges: ``^1.2.3``, ``^0.2``
* tilde ranges: ``~1.2.3``, ``~>1.2``
* comparators: ``>=1.0.0``, ``>1.0.0``, ``<=2.0.0``, ``<2.0.0``, ``=1.0.0``
* X-ranges and partial versions: ``1.2.x``, ``1.*``, ``1.2``, ``*``
* hyphen ranges: ``1.0.0 - 2.0.0``
* combined ranges (logical AND): ``>=1.0.0 <2.0.0``
* alternatives (logical OR): ``^1.0.0 || ^2.0.0``

Parsing never raises; anything else becomes :class:`Invalid`.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import cmp_to_key

import semver

from helm_updater.core.models import UpdateType

_OPERATORS = (">=", "<=", ">", "<", "=")
_WILDCARDS = {"x", "X", "*"}
_PARTIAL_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*|[xX*])"
    r"(?:\.(?P<minor>0|[1-9]\d*|[xX*])"
    r"(?:\.(?P<patch>0|[1-9]\d*|[xX*])"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r")?)?$"
)
_OP_SPACE_RE = re.compile(r"(>=|<=|>|<|=|\^|~>|~)\s+")
_HYPHEN_RE = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")


def parse_version(text: "str | semver.Version | None") -> semver.Version | None:
    """Parse a single version, tolerating a leading ``v`` or ``=``.

    Returns:
        The parsed version, or None if ``text`` is not a full semantic version
    """
    if isinstance(text, semver.Version):
        return text
    if not text or not isinstance(text, str):
        return None
    raw = text.strip()
    if raw[:1] in ("v", "V", "="):
        raw = raw[1:].strip()
    try:
        return semver.Version.parse(raw)
    except (ValueError, TypeError):
        return None


@dataclass(frozen=True)
class _Partial:
    """A possibly incomplete version; ``None`` components were omitted or wildcards."""

    major: int | None
    minor: int | None = None
    patch: int | None = None
    prerelease: str | None = None

    @property
    def precision(self) -> int:
        return sum(part is not None for part in (self.major, self.minor, self.patch))

    def floor(self) -> semver.Version:
        return semver.Version(
            self.major or 0,
            self.minor or 0,
            self.patch or 0,
            prerelease=self.prerelease if self.precision == 3 else None,
        )


def _parse_partial(text: str) -> _Partial | None:
    match = _PARTIAL_RE.match(text.strip())
    if not match:
        return None

    parts: list[int | None] = []
    wildcard_seen = False
    for name in ("major", "minor", "patch"):
        raw = match.group(name)
        if raw is None or raw in _WILDCARDS or wildcard_seen:
            wildcard_seen = True
            parts.append(None)
        else:
            parts.append(int(raw))

    prerelease = match.group("pre") if parts[2] is not None else None
    return _Partial(parts[0], parts[1], parts[2], prerelease)


# ---------------------------------------------------------------------------
# Constraint variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Comparator:
    """A single ``<op><version>`` clause."""

    op: str
    version: semver.Version
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        # Upper bounds say nothing about where the dependency currently is
        return self.version if self.op in (">=", ">", "=") else None

    def test(self, version: semver.Version) -> bool:
        result = version.compare(self.version)
        if self.op == ">=":
            return result >= 0
        if self.op == ">":
            return result > 0
        if self.op == "<=":
            return result <= 0
        if self.op == "<":
            return result < 0
        return result == 0

    def clauses(self) -> list[tuple["Comparator", ...]]:
        return [(self,)]

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class Exact:
    """An exact version such as ``1.2.3``."""

    version: semver.Version
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        return self.version

    def clauses(self) -> list[tuple[Comparator, ...]]:
        return [(Comparator("=", self.version),)]


@dataclass(frozen=True)
class Caret:
    """``^x.y.z``: changes that keep the left-most non-zero component."""

    version: semver.Version
    precision: int = 3
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        return self.version

    def clauses(self) -> list[tuple[Comparator, ...]]:
        v = self.version
        if v.major > 0 or self.precision == 1:
            upper = semver.Version(v.major + 1, 0, 0)
        elif v.minor > 0 or self.precision == 2:
            upper = semver.Version(0, v.minor + 1, 0)
        else:
            upper = semver.Version(0, 0, v.patch + 1)
        return [(Comparator(">=", v), Comparator("<", upper))]


@dataclass(frozen=True)
class Tilde:
    """``~x.y.z``: patch-level changes within ``x.y``."""

    version: semver.Version
    precision: int = 3
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        return self.version

    def clauses(self) -> list[tuple[Comparator, ...]]:
        v = self.version
        if self.precision == 1:
            upper = semver.Version(v.major + 1, 0, 0)
        else:
            upper = semver.Version(v.major, v.minor + 1, 0)
        return [(Comparator(">=", v), Comparator("<", upper))]


@dataclass(frozen=True)
class Range:
    """Logical AND of comparators; an empty range matches every release."""

    comparators: tuple[Comparator, ...] = ()
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        lower = [c.version for c in self.comparators if c.op in (">=", ">", "=")]
        return max(lower) if lower else None

    def clauses(self) -> list[tuple[Comparator, ...]]:
        return [self.comparators]


@dataclass(frozen=True)
class Union:
    """Logical OR of constraints (``a || b``)."""

    alternatives: tuple["ParsedConstraint", ...] = ()
    original: str = ""

    is_valid = True

    @property
    def anchor(self) -> semver.Version | None:
        anchors = [a.anchor for a in self.alternatives if a.anchor is not None]
        return min(anchors) if anchors else None

    def clauses(self) -> list[tuple[Comparator, ...]]:
        result: list[tuple[Comparator, ...]] = []
        for alternative in self.alternatives:
            result.extend(alternative.clauses())
        return result


@dataclass(frozen=True)
class Invalid:
    """Unparsable constraint text."""

    original: str = ""
    error: str = field(default="Invalid semver constraint")

    is_valid = False

    @property
    def anchor(self) -> semver.Version | None:
        return None

    def clauses(self) -> list[tuple[Comparator, ...]]:
        return []


ParsedConstraint = Exact | Caret | Tilde | Comparator | Range | Union | Invalid


# ---------------------------------------------------------------------------
# Lowering helpers
# ---------------------------------------------------------------------------


def _bump(partial: _Partial) -> semver.Version:
    """Smallest version above every version matching ``partial``."""
    if partial.minor is None:
        return semver.Version(partial.major + 1, 0, 0)
    return semver.Version(partial.major, partial.minor + 1, 0)


def _xrange(partial: _Partial) -> list[Comparator]:
    if partial.major is None:
        return []
    if partial.precision == 3:
        return [Comparator("=", partial.floor())]
    return [Comparator(">=", partial.floor()), Comparator("<", _bump(partial))]


def _comparator(op: str, partial: _Partial) -> list[Comparator]:
    if partial.major is None:
        # ">=*" and friends match everything; "<*" matches nothing
        return [] if op in (">=", "<=", "=") else [Comparator("<", semver.Version(0, 0, 0))]
    if partial.precision == 3:
        return [Comparator(op, partial.floor())]
    if op == "=":
        return _xrange(partial)
    if op == ">":
        return [Comparator(">=", _bump(partial))]
    if op == "<=":
        return [Comparator("<", _bump(partial))]
    return [Comparator(op, partial.floor())]


def _split_operator(token: str) -> tuple[str, str]:
    for op in _OPERATORS:
        if token.startswith(op):
            return op, token[len(op):]
    return "", token


def _lower_token(token: str) -> list[Comparator]:
    """Lower one whitespace-free token to comparators (raises ValueError)."""
    if token.startswith("^"):
        return list(_parse_caret(token[1:], token).clauses()[0])
    if token.startswith("~"):
        return list(_parse_tilde(token.lstrip("~").lstrip(">"), token).clauses()[0])

    op, rest = _split_operator(token)
    partial = _parse_partial(rest)
    if partial is None:
        raise ValueError(f"Invalid version in '{token}'")
    if op:
        return _comparator(op, partial)
    return _xrange(partial)


def _parse_caret(text: str, original: str) -> Caret:
    partial = _parse_partial(text)
    if partial is None or partial.major is None:
        raise ValueError(f"Invalid caret range '{original}'")
    return Caret(partial.floor(), partial.precision, original)


def _parse_tilde(text: str, original: str) -> Tilde:
    partial = _parse_partial(text)
    if partial is None or partial.major is None:
        raise ValueError(f"Invalid tilde range '{original}'")
    return Tilde(partial.floor(), max(partial.precision, 1), original)


def _parse_hyphen(low: str, high: str, original: str) -> Range:
    low_partial = _parse_partial(low)
    high_partial = _parse_partial(high)
    if low_partial is None or high_partial is None:
        raise ValueError(f"Invalid hyphen range '{original}'")

    comparators: list[Comparator] = []
    if low_partial.major is not None:
        comparators.append(Comparator(">=", low_partial.floor()))
    if high_partial.major is not None:
        if high_partial.precision == 3:
            comparators.append(Comparator("<=", high_partial.floor()))
        else:
            comparators.append(Comparator("<", _bump(high_partial)))
    return Range(tuple(comparators), original)


def _parse_single(text: str, original: str) -> ParsedConstraint:
    """Parse one ``||`` alternative (raises ValueError)."""
    text = _OP_SPACE_RE.sub(r"\1", text.strip())
    if not text:
        raise ValueError("Empty constraint string")

    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return _parse_hyphen(hyphen.group("low"), hyphen.group("high"), original)

    tokens = text.split()
    if len(tokens) > 1:
        comparators: list[Comparator] = []
        for token in tokens:
            comparators.extend(_lower_token(token))
        return Range(tuple(comparators), original)

    token = tokens[0]
    if token.startswith("^"):
        return _parse_caret(token[1:], original)
    if token.startswith("~"):
        return _parse_tilde(token.lstrip("~").lstrip(">"), original)

    op, rest = _split_operator(token)
    if not op:
        exact = parse_version(token)
        if exact is not None:
            return Exact(exact, original)

    lowered = _lower_token(token)
    if op and len(lowered) == 1:
        c = lowered[0]
        return Comparator(c.op, c.version, original)
    return Range(tuple(lowered), original)


def _check_clause(version: semver.Version, clause: tuple[Comparator, ...]) -> bool:
    if not all(c.test(version) for c in clause):
        return False
    if not version.prerelease:
        return True
    # A pre-release only matches when the clause explicitly opts into
    # pre-releases of the same major.minor.patch.
    core = (version.major, version.minor, version.patch)
    return any(
        c.version.prerelease and (c.version.major, c.version.minor, c.version.patch) == core
        for c in clause
    )


def _version_key(text: str) -> tuple[semver.Version, str]:
    return parse_version(text), text


class VersionParser:
    """Parse and evaluate semantic version constraints."""

    @staticmethod
    def parse(constraint: str) -> ParsedConstraint:
        """Parse a version constraint string.

        Args:
            constraint: Constraint text, e.g. ``"^1.2.0"`` or ``">=1.0.0 <2.0.0"``

        Returns:
            A constraint variant; ``Invalid`` when the text cannot be parsed
        """
        if not isinstance(constraint, str):
            return Invalid(str(constraint), "Constraint must be a string")
        if not constraint.strip():
            return Invalid(constraint, "Empty constraint string")

        try:
            parts = [p for p in constraint.split("||")]
            if len(parts) == 1:
                return _parse_single(parts[0], constraint)
            alternatives = tuple(_parse_single(p, p.strip()) for p in parts)
            return Union(alternatives, constraint)
        except (ValueError, TypeError) as e:
            return Invalid(constraint, str(e))

    @staticmethod
    def satisfies(version: "str | semver.Version", constraint: "ParsedConstraint | str") -> bool:
        """Check whether a version satisfies a constraint.

        Args:
            version: Version to check
            constraint: Parsed constraint or constraint text

        Returns:
            True if the version satisfies the constraint
        """
        if isinstance(constraint, str):
            constraint = VersionParser.parse(constraint)
        parsed = parse_version(version)
        if parsed is None or not constraint.is_valid:
            return False
        return any(_check_clause(parsed, clause) for clause in constraint.clauses())

    @staticmethod
    def version_satisfies(version: str, constraint: str) -> bool:
        """Convenience wrapper combining :meth:`parse` and :meth:`satisfies`."""
        return VersionParser.satisfies(version, VersionParser.parse(constraint))

    @staticmethod
    def filter_versions(versions: Iterable[str], constraint: "ParsedConstraint | str") -> list[str]:
        """Keep the versions that satisfy a constraint, preserving input order."""
        return [v for v in versions if VersionParser.satisfies(v, constraint)]

    @staticmethod
    def max_satisfying(versions: Iterable[str], constraint: "ParsedConstraint | str") -> str | None:
        """Get the greatest version satisfying a constraint.

        Ties in precedence (differing only in build metadata) resolve to the
        lexically greatest string so the result never depends on input order.
        """
        candidates = VersionParser.filter_versions(versions, constraint)
        if not candidates:
            return None
        return max(candidates, key=_version_key)

    @staticmethod
    def min_satisfying(versions: Iterable[str], constraint: "ParsedConstraint | str") -> str | None:
        """Get the smallest version satisfying a constraint."""
        candidates = VersionParser.filter_versions(versions, constraint)
        if not candidates:
            return None
        return min(candidates, key=_version_key)

    @staticmethod
    def is_valid_version(version: str) -> bool:
        """Check whether a string is a full semantic version."""
        return parse_version(version) is not None

    @staticmethod
    def is_valid_constraint(constraint: str) -> bool:
        """Check whether a string parses as a constraint."""
        return VersionParser.parse(constraint).is_valid

    @staticmethod
    def compare(v1: str, v2: str) -> int | None:
        """Compare two versions.

        Returns:
            -1, 0 or 1, or None if either version is invalid
        """
        a, b = parse_version(v1), parse_version(v2)
        if a is None or b is None:
            return None
        return a.compare(b)

    @staticmethod
    def sort_versions(versions: Iterable[str]) -> list[str]:
        """Sort valid versions ascending; invalid ones are dropped."""
        valid = [v for v in versions if parse_version(v) is not None]
        return sorted(valid, key=cmp_to_key(lambda a, b: parse_version(a).compare(parse_version(b)) or (a > b) - (a < b)))

    @staticmethod
    def sort_versions_descending(versions: Iterable[str]) -> list[str]:
        """Sort valid versions descending; invalid ones are dropped."""
        return list(reversed(VersionParser.sort_versions(versions)))

    @staticmethod
    def classify_update(current: "str | semver.Version", new: "str | semver.Version") -> UpdateType | None:
        """Classify the bump from ``current`` to ``new``.

        Returns:
            The update type, or None if either version is invalid or ``new``
            is not newer
        """
        cur, nxt = parse_version(current), parse_version(new)
        if cur is None or nxt is None or nxt.compare(cur) <= 0:
            return None
        if nxt.major != cur.major:
            return UpdateType.MAJOR
        if nxt.minor != cur.minor:
            return UpdateType.MINOR
        return UpdateType.PATCH
