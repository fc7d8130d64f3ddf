"""Compatibility Catalog — the read-only table of known-good triples.

The catalog is validated eagerly at construction. Malformed or inconsistent
data raises CatalogLoadError there and never mid-resolution:
- duplicate triples
- cyclic or conflicting compatibility declarations
- declarations that lead to no catalog entry
- CUDA versions with no build recipe (when a RecipeBook is attached)

Once built, a Catalog is never mutated and may be shared across threads.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict, deque
from collections.abc import Iterable, Iterator
from importlib.resources import files
from pathlib import Path

from pydantic import ValidationError

from cudalis.models.catalog import (
    CatalogDocument,
    CatalogRow,
    CompatibilityDeclaration,
    CompatibilityEntry,
    DeclarationRow,
    RecipeBook,
)
from cudalis.models.versions import (
    Component,
    Constraint,
    ConstraintKind,
    InvalidVersionError,
    Version,
    cuda_sort_key,
)

logger = logging.getLogger(__name__)


class CatalogLoadError(ValueError):
    """Raised when compatibility data is malformed or inconsistent."""


class Catalog:
    """Immutable set of CompatibilityEntry records plus declared ranges.

    Parameters
    ----------
    entries:
        The known-good triples.
    compatibility:
        Declarations mapping a requested version onto the version whose
        builds serve it.
    recipes:
        Base images per platform. When given, every CUDA version in the
        catalog must have one.
    """

    def __init__(
        self,
        entries: Iterable[CompatibilityEntry],
        compatibility: Iterable[CompatibilityDeclaration] = (),
        recipes: RecipeBook | None = None,
    ) -> None:
        entries = list(entries)
        self._check_duplicates(entries)
        self._entries: tuple[CompatibilityEntry, ...] = tuple(
            sorted(entries, key=CompatibilityEntry.sort_key)
        )
        self._values: dict[Component, frozenset[Version | None]] = {
            component: frozenset(e.value(component) for e in self._entries)
            for component in Component
        }
        self._served_by = self._index_declarations(list(compatibility))
        self._validate_no_cycles()
        self._validate_targets()
        self.recipes = recipes
        if recipes is not None:
            self._validate_recipes(recipes)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _check_duplicates(entries: list[CompatibilityEntry]) -> None:
        seen: set[CompatibilityEntry] = set()
        for entry in entries:
            if entry in seen:
                raise CatalogLoadError(f"Duplicate catalog entry: {entry.label()}")
            seen.add(entry)

    @staticmethod
    def _index_declarations(
        declarations: list[CompatibilityDeclaration],
    ) -> dict[Component, dict[Version, Version]]:
        index: dict[Component, dict[Version, Version]] = {c: {} for c in Component}
        for decl in declarations:
            edges = index[decl.component]
            if decl.version == decl.served_by:
                raise CatalogLoadError(
                    f"{decl.component.value} {decl.version} is declared to serve itself"
                )
            existing = edges.get(decl.version)
            if existing is not None and existing != decl.served_by:
                raise CatalogLoadError(
                    f"Conflicting declarations for {decl.component.value} "
                    f"{decl.version}: served by {existing} and {decl.served_by}"
                )
            edges[decl.version] = decl.served_by
        return index

    def _validate_no_cycles(self) -> None:
        """Verify each component's declaration graph is a DAG (Kahn's algorithm)."""
        for component, edges in self._served_by.items():
            nodes = set(edges) | set(edges.values())
            in_degree = {node: 0 for node in nodes}
            for target in edges.values():
                in_degree[target] += 1
            queue = deque(node for node, deg in in_degree.items() if deg == 0)
            visited = 0
            while queue:
                node = queue.popleft()
                visited += 1
                target = edges.get(node)
                if target is not None:
                    in_degree[target] -= 1
                    if in_degree[target] == 0:
                        queue.append(target)
            if visited != len(nodes):
                raise CatalogLoadError(
                    f"Cyclic compatibility declarations for {component.value}. "
                    f"Visited {visited}/{len(nodes)} versions."
                )

    def _validate_targets(self) -> None:
        for component, edges in self._served_by.items():
            for version in edges:
                terminal = self._candidates(component, version)[-1]
                if terminal not in self._values[component]:
                    raise CatalogLoadError(
                        f"{component.value} {version} is served by {terminal}, "
                        "which has no catalog entry"
                    )

    def _validate_recipes(self, recipes: RecipeBook) -> None:
        for key in recipes.cuda_base_images:
            try:
                Version.parse(key)
            except InvalidVersionError as exc:
                raise CatalogLoadError(f"Invalid recipe CUDA version: {key!r}") from exc
        missing = sorted(
            (v for v in self._values[Component.CUDA] if recipes.base_image_for(v) is None),
            key=cuda_sort_key,
        )
        if missing:
            raise CatalogLoadError(
                "No build recipe for CUDA " + ", ".join(str(v) for v in missing)
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CompatibilityEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[CompatibilityEntry, ...]:
        """All entries in ascending (python, torch, cuda) order."""
        return self._entries

    @property
    def declarations(self) -> list[CompatibilityDeclaration]:
        return [
            CompatibilityDeclaration(component=component, version=version, served_by=target)
            for component, edges in self._served_by.items()
            for version, target in sorted(edges.items())
        ]

    def values(self, component: Component) -> frozenset[Version | None]:
        """Distinct values of one component across all entries."""
        return self._values[component]

    def latest(self, component: Component) -> Version | None:
        """Greatest value of a component; for CUDA, the greatest non-CPU value."""
        versions = [v for v in self._values[component] if v is not None]
        if not versions:
            return None
        return max(versions)

    def _candidates(self, component: Component, version: Version) -> tuple[Version, ...]:
        """``version`` followed by the chain of versions declared to serve it."""
        chain = [version]
        edges = self._served_by[component]
        while chain[-1] in edges:
            chain.append(edges[chain[-1]])
        return tuple(chain)

    def match_via(
        self, component: Component, requested: Version | None, value: Version | None
    ) -> Version | None:
        """Return the version through which ``value`` satisfies ``requested``.

        That is ``requested`` itself, or a version declared to serve it.
        Returns None when there is no match. A CPU request matches only
        CPU values, and the CPU match is reported as ``None``.
        """
        if requested is None or value is None:
            return None
        for candidate in self._candidates(component, requested):
            if value.satisfies(candidate):
                return candidate
        return None

    def accepts(
        self, component: Component, constraint: Constraint, value: Version | None
    ) -> bool:
        """True when an entry's ``value`` meets ``constraint``."""
        if constraint.kind is ConstraintKind.UNSPECIFIED:
            return True
        if constraint.kind is ConstraintKind.LATEST:
            return value == self.latest(component)
        if constraint.version is None:
            return value is None
        return self.match_via(component, constraint.version, value) is not None

    def knows(self, component: Component, version: Version | None) -> bool:
        """True when some entry can serve ``version`` of ``component``."""
        if version is None:
            return None in self._values[component]
        return any(
            self.match_via(component, version, value) is not None
            for value in self._values[component]
        )

    def lookup(
        self,
        python: Constraint | None = None,
        torch: Constraint | None = None,
        cuda: Constraint | None = None,
    ) -> frozenset[CompatibilityEntry]:
        """Return every entry matching all three constraints."""
        constraints = {
            Component.PYTHON: python or Constraint.unspecified(),
            Component.TORCH: torch or Constraint.unspecified(),
            Component.CUDA: cuda or Constraint.unspecified(),
        }
        return frozenset(
            entry
            for entry in self._entries
            if all(
                self.accepts(component, constraint, entry.value(component))
                for component, constraint in constraints.items()
            )
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_document(self) -> CatalogDocument:
        """Compact this catalog back into a CatalogDocument."""
        return CatalogDocument(
            rows=entries_to_rows(self._entries),
            compatibility=[
                DeclarationRow(
                    component=decl.component,
                    version=str(decl.version),
                    served_by=str(decl.served_by),
                )
                for decl in self.declarations
            ],
            recipes=self.recipes or RecipeBook(),
        )


# ---------------------------------------------------------------------------
# Document conversion and loading
# ---------------------------------------------------------------------------


def entries_to_rows(entries: Iterable[CompatibilityEntry]) -> list[CatalogRow]:
    """Group entries into compact rows whose cross products reproduce them."""
    by_torch: dict[Version, dict[Version, set[Version | None]]] = defaultdict(
        lambda: defaultdict(set)
    )
    for entry in entries:
        by_torch[entry.torch][entry.python].add(entry.cuda)

    rows: list[CatalogRow] = []
    for torch in sorted(by_torch):
        groups: dict[frozenset[Version | None], list[Version]] = defaultdict(list)
        for python, cudas in by_torch[torch].items():
            groups[frozenset(cudas)].append(python)
        for cudas, pythons in sorted(
            groups.items(), key=lambda item: min(item[1])
        ):
            rows.append(
                CatalogRow(
                    torch=str(torch),
                    python=[str(p) for p in sorted(pythons)],
                    cuda=[
                        None if c is None else str(c)
                        for c in sorted(cudas, key=cuda_sort_key)
                    ],
                )
            )
    return rows


def catalog_from_document(document: CatalogDocument) -> Catalog:
    """Expand a CatalogDocument's rows and build a validated Catalog."""
    try:
        entries = [
            CompatibilityEntry(python=python, torch=row.torch, cuda=cuda)
            for row in document.rows
            for python in row.python
            for cuda in row.cuda
        ]
        declarations = [
            CompatibilityDeclaration(
                component=row.component, version=row.version, served_by=row.served_by
            )
            for row in document.compatibility
        ]
    except (ValidationError, InvalidVersionError) as exc:
        raise CatalogLoadError(f"Malformed catalog data: {exc}") from exc
    return Catalog(entries, declarations, recipes=document.recipes)


def read_catalog_document(path: Path | None = None) -> CatalogDocument:
    """Read and validate a catalog JSON document.

    With no path, reads the table shipped in ``cudalis/data/catalog.json``.
    """
    try:
        if path is None:
            text = files("cudalis").joinpath("data/catalog.json").read_text(
                encoding="utf-8"
            )
        else:
            text = Path(path).read_text(encoding="utf-8")
        return CatalogDocument.model_validate(json.loads(text))
    except OSError as exc:
        raise CatalogLoadError(f"Cannot read catalog {path or '<bundled>'}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(f"Catalog is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise CatalogLoadError(f"Catalog does not match the schema: {exc}") from exc


def load_catalog(path: Path | None = None) -> Catalog:
    """Load the catalog once at startup. Raises CatalogLoadError."""
    catalog = catalog_from_document(read_catalog_document(path))
    logger.debug(
        "Loaded catalog from %s: %d entries, %d declarations",
        path or "<bundled>",
        len(catalog),
        len(catalog.declarations),
    )
    return catalog
