"""Catalog import from PyTorch's wheel link page (``torch_stable.html``).

Each line of the page links one wheel, e.g.::

    <a href="cu110/torch-1.7.1%2Bcu110-cp38-cp38-linux_x86_64.whl">...</a>

which becomes the entry (python 3.8, torch 1.7.1, cuda 11.0). Only
``torch`` wheels for the container platform are kept.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from cudalis.core.catalog import entries_to_rows
from cudalis.models.catalog import (
    CatalogDocument,
    CompatibilityDeclaration,
    CompatibilityEntry,
    DeclarationRow,
    RecipeBook,
)
from cudalis.models.versions import Component, InvalidVersionError, Version

logger = logging.getLogger(__name__)

_HREF = re.compile(r'href="([^"]+\.whl)"')
_PLATFORM_WORDS = (
    ("manylinux", "linux"),
    ("macosx", "macos"),
    ("win", "windows"),
    ("amd64", "x86_64"),
    ("arm64", "aarch64"),
)


def normalize_platform(tag: str) -> str:
    """Map a wheel platform tag onto ``<os>_<arch>`` vocabulary."""
    tag = tag.removesuffix(".whl")
    for old, new in _PLATFORM_WORDS:
        tag = tag.replace(old, new)
    return tag


def python_from_tag(tag: str) -> Version:
    """``cp38`` -> 3.8, ``cp310`` -> 3.10."""
    digits = tag.removeprefix("cp")
    if len(digits) < 2 or not digits.isdigit():
        raise InvalidVersionError(f"Unrecognized Python tag: {tag!r}")
    return Version((int(digits[0]), int(digits[1:])))


def cuda_from_accelerator(accelerator: str) -> Version | None:
    """``cpu`` -> None, ``cu92`` -> 9.2, ``cu110`` -> 11.0, ``cu121`` -> 12.1."""
    accelerator = accelerator.replace("_pypi_cudnn", "")
    if accelerator == "cpu":
        return None
    digits = accelerator.removeprefix("cu")
    if not accelerator.startswith("cu") or len(digits) < 2 or not digits.isdigit():
        raise InvalidVersionError(f"Unrecognized accelerator: {accelerator!r}")
    return Version((int(digits[:-1]), int(digits[-1])))


def parse_wheel_href(
    href: str, *, os_name: str = "linux", arch: str = "x86_64"
) -> CompatibilityEntry | None:
    """Parse one wheel link; None if it is not a matching torch wheel."""
    if "/" not in href:
        return None
    accelerator, filename = href.split("/", 1)
    if not (accelerator.startswith("cpu") or accelerator.startswith("cu")):
        return None
    parts = filename.split("-")
    if len(parts) < 5 or parts[0] != "torch":
        return None
    platform = normalize_platform(parts[4])
    if os_name not in platform or arch not in platform:
        return None
    try:
        return CompatibilityEntry(
            python=python_from_tag(parts[2]),
            torch=Version.parse(parts[1].split("%2B")[0]),
            cuda=cuda_from_accelerator(accelerator),
        )
    except ValueError as exc:
        logger.debug("Skipping %s: %s", href, exc)
        return None


def parse_wheel_index(
    html: str, *, os_name: str = "linux", arch: str = "x86_64"
) -> list[CompatibilityEntry]:
    """Parse a wheel link page into sorted, de-duplicated entries."""
    entries: set[CompatibilityEntry] = set()
    for line in html.splitlines():
        for href in _HREF.findall(line):
            entry = parse_wheel_href(href, os_name=os_name, arch=arch)
            if entry is not None:
                entries.add(entry)
    logger.info("Parsed %d torch wheel combinations", len(entries))
    return sorted(entries, key=CompatibilityEntry.sort_key)


def _reachable(
    declarations: Iterable[CompatibilityDeclaration], known: set[Version | None]
) -> list[CompatibilityDeclaration]:
    """Keep declarations whose served_by chain ends at a known version."""
    edges = {decl.version: decl.served_by for decl in declarations}
    kept = []
    for decl in declarations:
        target, hops = decl.served_by, 0
        while target in edges and hops <= len(edges):
            target, hops = edges[target], hops + 1
        if target in known:
            kept.append(decl)
    return kept


def build_document(
    entries: Iterable[CompatibilityEntry],
    recipes: RecipeBook,
    declarations: Iterable[CompatibilityDeclaration] = (),
) -> tuple[CatalogDocument, list[Version]]:
    """Build a CatalogDocument from imported entries.

    Entries whose CUDA version has no recipe are dropped; the dropped CUDA
    versions are returned alongside the document.
    """
    kept: list[CompatibilityEntry] = []
    dropped: set[Version] = set()
    for entry in entries:
        if recipes.base_image_for(entry.cuda) is None:
            dropped.add(entry.cuda)
        else:
            kept.append(entry)
    for version in sorted(dropped):
        logger.warning("No recipe for CUDA %s; dropping its entries", version)

    declarations = list(declarations)
    kept_decls: list[CompatibilityDeclaration] = []
    for component in Component:
        values = {entry.value(component) for entry in kept}
        kept_decls += _reachable(
            [d for d in declarations if d.component is component], values
        )
    document = CatalogDocument(
        rows=entries_to_rows(kept),
        compatibility=[
            DeclarationRow(
                component=decl.component,
                version=str(decl.version),
                served_by=str(decl.served_by),
            )
            for decl in kept_decls
        ],
        recipes=recipes,
    )
    return document, sorted(dropped)
