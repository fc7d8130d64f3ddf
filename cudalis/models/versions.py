"""Version and constraint value types.

Versions are release tuples parsed with ``packaging``. A partial version is a
range: ``11.0`` stands for every ``11.0.x``. Ordering is total so that catalog
tie-breaks never depend on string comparison.
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering

from packaging.version import InvalidVersion
from packaging.version import Version as _PackagingVersion
from pydantic import BaseModel, ConfigDict


# Release parts of a fully specified version (major.minor.patch).
_FULL_RELEASE = 3


class InvalidVersionError(ValueError):
    """Raised when a version string is not a plain release version."""


class Component(str, Enum):
    """The three axes of a build triple."""

    PYTHON = "python"
    TORCH = "torch"
    CUDA = "cuda"


@total_ordering
class Version:
    """An immutable, totally ordered release version.

    Parameters
    ----------
    release:
        The numeric release components, e.g. ``(11, 0)``.
    """

    __slots__ = ("_release",)

    def __init__(self, release: tuple[int, ...]) -> None:
        if not release or any(part < 0 for part in release):
            raise InvalidVersionError(f"Invalid release tuple: {release!r}")
        self._release = tuple(release)

    @classmethod
    def parse(cls, text: str | Version) -> Version:
        """Parse ``"3.8"``, ``"1.7.1"`` or ``"1.7.1+cu110"``.

        The local label is discarded. Pre, post and dev releases are rejected.
        """
        if isinstance(text, Version):
            return text
        raw = str(text).strip()
        try:
            parsed = _PackagingVersion(raw)
        except InvalidVersion as exc:
            raise InvalidVersionError(f"Invalid version: {raw!r}") from exc
        if parsed.is_prerelease or parsed.is_postrelease or parsed.epoch:
            raise InvalidVersionError(
                f"Only plain release versions are supported: {raw!r}"
            )
        return cls(parsed.release)

    @property
    def release(self) -> tuple[int, ...]:
        return self._release

    @property
    def major(self) -> int:
        return self._release[0]

    @property
    def minor(self) -> int:
        return self._release[1] if len(self._release) > 1 else 0

    def sort_key(self) -> tuple[tuple[int, ...], int]:
        """Zero-padded release, then specificity: ``11 < 11.0 < 11.0.0``."""
        padded = self._release + (0,) * max(0, _FULL_RELEASE - len(self._release))
        return padded, len(self._release)

    def satisfies(self, other: Version) -> bool:
        """True when either release tuple is a prefix of the other.

        Only a partial version (fewer than three parts) stands for a range:
        ``11.0`` covers ``11.0.3``, but ``1.7.1`` does not cover ``1.7.1.9``.
        """
        lengths = len(self._release), len(other._release)
        shorter = min(lengths)
        if shorter >= _FULL_RELEASE and lengths[0] != lengths[1]:
            return False
        return self._release[:shorter] == other._release[:shorter]

    def narrow(self, other: Version) -> Version:
        """Return the more specific of two satisfying versions."""
        if not self.satisfies(other):
            raise InvalidVersionError(f"{self} does not satisfy {other}")
        return other if len(other._release) > len(self._release) else self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._release == other._release

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self._release)

    def __str__(self) -> str:
        return ".".join(str(part) for part in self._release)

    def __repr__(self) -> str:
        return f"Version('{self}')"


def cuda_sort_key(version: Version | None) -> tuple[int, tuple[tuple[int, ...], int]]:
    """Sort key placing CPU-only (None) below every CUDA version."""
    if version is None:
        return 0, ((), 0)
    return 1, version.sort_key()


def format_cuda(version: Version | None) -> str:
    """Human label for a CUDA component: ``cpu`` or ``cu11.0``."""
    return "cpu" if version is None else f"cu{version}"


class ConstraintKind(str, Enum):
    EXACT = "exact"
    LATEST = "latest"
    UNSPECIFIED = "unspecified"


_CPU_WORDS = frozenset({"cpu", "none"})


class Constraint(BaseModel):
    """A user restriction on one component of the triple.

    ``Exact`` with ``version=None`` is the CPU-only CUDA constraint.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ConstraintKind = ConstraintKind.UNSPECIFIED
    version: Version | None = None

    @classmethod
    def exact(cls, version: str | Version | None) -> Constraint:
        return cls(
            kind=ConstraintKind.EXACT,
            version=None if version is None else Version.parse(version),
        )

    @classmethod
    def latest(cls) -> Constraint:
        return cls(kind=ConstraintKind.LATEST)

    @classmethod
    def unspecified(cls) -> Constraint:
        return cls(kind=ConstraintKind.UNSPECIFIED)

    @classmethod
    def parse(cls, text: str | None, component: Component) -> Constraint:
        """Parse a CLI flag value for ``component``.

        ``None`` or ``""`` -> Unspecified, ``latest`` -> Latest,
        ``cpu``/``none`` -> CPU-only (CUDA only), anything else -> Exact.
        """
        if text is None or not text.strip():
            return cls.unspecified()
        word = text.strip().lower()
        if word == "latest":
            return cls.latest()
        if word in _CPU_WORDS:
            if component is not Component.CUDA:
                raise InvalidVersionError(
                    f"'{text}' is only valid for the cuda component"
                )
            return cls.exact(None)
        return cls.exact(word)

    @property
    def is_exact(self) -> bool:
        return self.kind is ConstraintKind.EXACT

    def describe(self) -> str:
        if self.kind is ConstraintKind.EXACT:
            return "cpu" if self.version is None else str(self.version)
        return self.kind.value
