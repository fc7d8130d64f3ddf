"""Cudalis data models — all frozen pydantic models."""

from cudalis.models.catalog import (
    CatalogDocument,
    CatalogRow,
    CompatibilityDeclaration,
    CompatibilityEntry,
    DeclarationRow,
    RecipeBook,
)
from cudalis.models.plan import BuildPlan, BuildStep, ResolvedTriple, StepKind
from cudalis.models.results import (
    BuildResult,
    CacheContext,
    PlanState,
    StepRecord,
    StepResult,
    StepStatus,
)
from cudalis.models.versions import (
    Component,
    Constraint,
    ConstraintKind,
    InvalidVersionError,
    Version,
)

__all__ = [
    "BuildPlan",
    "BuildResult",
    "BuildStep",
    "CacheContext",
    "CatalogDocument",
    "CatalogRow",
    "CompatibilityDeclaration",
    "CompatibilityEntry",
    "Component",
    "Constraint",
    "ConstraintKind",
    "DeclarationRow",
    "InvalidVersionError",
    "PlanState",
    "RecipeBook",
    "ResolvedTriple",
    "StepKind",
    "StepRecord",
    "StepResult",
    "StepStatus",
    "Version",
]
