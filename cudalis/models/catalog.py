"""Compatibility catalog models — entries, declarations, recipes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from cudalis.models.versions import Component, Version, cuda_sort_key, format_cuda


def _coerce_version(value: Any) -> Any:
    if isinstance(value, (str, int, float)):
        return Version.parse(str(value))
    return value


class CompatibilityEntry(BaseModel):
    """A known-good (Python, PyTorch, CUDA) triple.

    ``cuda`` is None for CPU-only builds.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    python: Version
    torch: Version
    cuda: Version | None = None

    @field_validator("python", "torch", "cuda", mode="before")
    @classmethod
    def _parse_versions(cls, value: Any) -> Any:
        return _coerce_version(value)

    def value(self, component: Component) -> Version | None:
        return getattr(self, component.value)

    def sort_key(self) -> tuple:
        """Lexicographic (python, torch, cuda) with CPU ranked lowest."""
        return (self.python.sort_key(), self.torch.sort_key(), cuda_sort_key(self.cuda))

    def label(self) -> str:
        return f"python {self.python}, torch {self.torch}, {format_cuda(self.cuda)}"

    def as_dict(self) -> dict[str, str | None]:
        return {
            "python": str(self.python),
            "torch": str(self.torch),
            "cuda": None if self.cuda is None else str(self.cuda),
        }


class CompatibilityDeclaration(BaseModel):
    """Requests for ``version`` of ``component`` are served by ``served_by``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    component: Component
    version: Version
    served_by: Version

    @field_validator("version", "served_by", mode="before")
    @classmethod
    def _parse_versions(cls, value: Any) -> Any:
        return _coerce_version(value)


class RecipeBook(BaseModel):
    """Base images per platform: one for CPU, one per CUDA version."""

    model_config = ConfigDict(frozen=True)

    cpu_base_image: str = "ubuntu:22.04"
    cuda_base_images: dict[str, str] = {}

    def base_image_for(self, cuda: Version | None) -> str | None:
        """Return the base image for a CUDA version, or None if unknown.

        An exact key wins; otherwise a key that ``cuda`` satisfies
        (recipe ``11.8`` serves ``11.8.0``).
        """
        if cuda is None:
            return self.cpu_base_image
        exact = self.cuda_base_images.get(str(cuda))
        if exact is not None:
            return exact
        for key in sorted(self.cuda_base_images):
            if Version.parse(key).satisfies(cuda):
                return self.cuda_base_images[key]
        return None


# ---------------------------------------------------------------------------
# On-disk document
# ---------------------------------------------------------------------------


class CatalogRow(BaseModel):
    """Compact row: one torch release, many Python and CUDA versions.

    Expanded to entries by cross product. ``null`` in ``cuda`` is CPU-only.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    torch: str
    python: list[str]
    cuda: list[str | None]


class DeclarationRow(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    component: Component
    version: str
    served_by: str


class CatalogDocument(BaseModel):
    """The JSON catalog shipped with the package (or given by path)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_version: int = 1
    rows: list[CatalogRow] = []
    compatibility: list[DeclarationRow] = []
    recipes: RecipeBook = RecipeBook()
