"""Constraint Resolver — turns user constraints into one concrete triple.

Resolution never fabricates a combination: the result always carries the
catalog entry it was drawn from. When several entries match, the greatest
(python, torch, cuda) entry wins.
"""

from __future__ import annotations

import logging

from cudalis.core.catalog import Catalog
from cudalis.models.catalog import CompatibilityEntry
from cudalis.models.plan import ResolvedTriple
from cudalis.models.versions import Component, Constraint, ConstraintKind, Version

logger = logging.getLogger(__name__)


class ResolutionError(ValueError):
    """Base class for constraint resolution failures."""


class UnknownVersion(ResolutionError):
    """An exact version has no catalog entry at all."""

    def __init__(self, component: Component, version: Version | None) -> None:
        self.component = component
        self.version = version
        label = "cpu" if version is None else str(version)
        super().__init__(
            f"Unknown {component.value} version {label}: no catalog entry provides it"
        )


class NoCompatibleVersion(ResolutionError):
    """Each version is known, but no entry matches the combination."""

    def __init__(
        self, narrowing: list[Component], constraints: dict[Component, Constraint]
    ) -> None:
        self.narrowing = narrowing
        self.constraints = constraints
        named = ", ".join(
            f"{c.value}={constraints[c].describe()}" for c in narrowing
        )
        super().__init__(
            f"No compatible combination for the given constraints; "
            f"try relaxing: {named}"
        )


class Resolver:
    """Resolves (python, torch, cuda) constraints against a Catalog.

    Parameters
    ----------
    catalog:
        The shared, read-only catalog.
    """

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def resolve(
        self,
        python: Constraint | None = None,
        torch: Constraint | None = None,
        cuda: Constraint | None = None,
    ) -> ResolvedTriple:
        """Return the single best triple, or raise a ResolutionError."""
        constraints = {
            Component.PYTHON: python or Constraint.unspecified(),
            Component.TORCH: torch or Constraint.unspecified(),
            Component.CUDA: cuda or Constraint.unspecified(),
        }
        logger.info(
            "Resolving python=%s torch=%s cuda=%s",
            *(constraints[c].describe() for c in Component),
        )

        for component, constraint in constraints.items():
            if constraint.is_exact and not self._catalog.knows(component, constraint.version):
                raise UnknownVersion(component, constraint.version)

        candidates = self._lookup(constraints)
        logger.debug("%d candidate entries", len(candidates))
        if not candidates:
            raise NoCompatibleVersion(self._narrowing(constraints), constraints)

        entry = max(candidates, key=CompatibilityEntry.sort_key)
        triple = ResolvedTriple(
            python=self._narrow(Component.PYTHON, constraints[Component.PYTHON], entry),
            torch=self._narrow(Component.TORCH, constraints[Component.TORCH], entry),
            cuda=self._narrow(Component.CUDA, constraints[Component.CUDA], entry),
            entry=entry,
        )
        logger.info("Resolved to %s", triple.label())
        return triple

    def _lookup(
        self, constraints: dict[Component, Constraint]
    ) -> frozenset[CompatibilityEntry]:
        return self._catalog.lookup(
            constraints[Component.PYTHON],
            constraints[Component.TORCH],
            constraints[Component.CUDA],
        )

    def _narrowing(self, constraints: dict[Component, Constraint]) -> list[Component]:
        """Constraints whose removal alone would make the lookup non-empty.

        Falls back to every constraint that restricts anything.
        """
        restricting = [
            c for c, constraint in constraints.items()
            if constraint.kind is not ConstraintKind.UNSPECIFIED
        ]
        culprits = [
            component
            for component in restricting
            if self._lookup({**constraints, component: Constraint.unspecified()})
        ]
        return culprits or restricting

    def _narrow(
        self, component: Component, constraint: Constraint, entry: CompatibilityEntry
    ) -> Version | None:
        value = entry.value(component)
        if not constraint.is_exact or value is None or constraint.version is None:
            return value
        via = self._catalog.match_via(component, constraint.version, value)
        return value if via is None else value.narrow(via)
