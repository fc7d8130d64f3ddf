"""Build Plan Generator: resolved triple in, ordered build steps out.

generate() is a pure function of (triple, recipes, settings): equal inputs
always give equal plans, which is what makes step cache keys reusable.
"""

from __future__ import annotations

import logging

from cudalis.core.hasher import compute_plan_id
from cudalis.models.catalog import RecipeBook
from cudalis.models.plan import BuildPlan, BuildStep, ResolvedTriple, StepKind
from cudalis.models.versions import Version, format_cuda

logger = logging.getLogger(__name__)

PYENV_ROOT = "/root/.pyenv"

_SYSTEM_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
_CUDA_PATH = "/usr/local/nvidia/bin:/usr/local/cuda/bin"

_BUILD_PACKAGES = (
    "ca-certificates curl git build-essential libffi-dev libssl-dev zlib1g-dev "
    "liblzma-dev libbz2-dev libreadline-dev libsqlite3-dev tk-dev"
)


class UnsupportedPlatform(RuntimeError):
    """A resolved triple has no build recipe. Indicates inconsistent data."""


def wheel_variant(cuda: Version | None) -> str:
    """PyTorch wheel index variant: ``cpu``, ``cu92``, ``cu110``, ``cu121``."""
    if cuda is None:
        return "cpu"
    return f"cu{cuda.major}{cuda.minor}"


def image_tag(triple: ResolvedTriple) -> str:
    return f"py{triple.python}-torch{triple.torch}-{format_cuda(triple.cuda)}"


class PlanGenerator:
    """Generates the fixed five-step BuildPlan for a resolved triple.

    Parameters
    ----------
    recipes:
        Base images per platform, normally ``catalog.recipes``.
    image_repository:
        Repository name for the final image reference.
    wheel_index_url:
        Root of the PyTorch wheel indexes (``<url>/<variant>``).
    """

    def __init__(
        self,
        recipes: RecipeBook | None,
        *,
        image_repository: str = "cudalis",
        wheel_index_url: str = "https://download.pytorch.org/whl",
    ) -> None:
        self._recipes = recipes
        self._repository = image_repository
        self._wheel_index_url = wheel_index_url.rstrip("/")

    def generate(self, triple: ResolvedTriple) -> BuildPlan:
        base_image = (
            self._recipes.base_image_for(triple.cuda) if self._recipes else None
        )
        if base_image is None:
            raise UnsupportedPlatform(
                f"No build recipe for {triple.label()} "
                f"(catalog entry: {triple.entry.label()}); "
                "the catalog and recipe sets are out of sync"
            )

        reference = f"{self._repository}:{image_tag(triple)}"
        parameters = [
            (StepKind.BASE_IMAGE, self._base_image(triple, base_image)),
            (StepKind.PYTHON_RUNTIME, self._python_runtime(triple)),
            (StepKind.PACKAGE_MANAGER, self._package_manager()),
            (StepKind.TORCH, self._torch(triple)),
            (StepKind.FREEZE, self._freeze(triple, reference)),
        ]
        steps = tuple(
            BuildStep(index=i, kind=kind, parameters=params)
            for i, (kind, params) in enumerate(parameters, start=1)
        )
        plan = BuildPlan(
            plan_id=compute_plan_id(reference, steps),
            triple=triple,
            image_reference=reference,
            steps=steps,
        )
        logger.debug("Generated plan %s for %s", plan.plan_id[:12], reference)
        return plan

    # ------------------------------------------------------------------
    # Step parameters
    # ------------------------------------------------------------------

    @staticmethod
    def _base_image(triple: ResolvedTriple, image: str) -> dict:
        return {
            "image": image,
            "cuda": None if triple.cuda is None else str(triple.cuda),
        }

    @staticmethod
    def _python_runtime(triple: ResolvedTriple) -> dict:
        python = str(triple.python)
        pyenv = f"{PYENV_ROOT}/bin/pyenv"
        return {
            "python": python,
            "commands": [
                "apt-get update && apt-get install -y --no-install-recommends "
                f"{_BUILD_PACKAGES} && rm -rf /var/lib/apt/lists/*",
                f"curl -fsSL https://pyenv.run | PYENV_ROOT={PYENV_ROOT} bash",
                f"{pyenv} install --skip-existing {python} && {pyenv} global {python}",
            ],
        }

    @staticmethod
    def _package_manager() -> dict:
        return {
            "commands": [
                f"{PYENV_ROOT}/shims/python -m pip install --no-cache-dir "
                "--upgrade pip setuptools wheel",
            ],
        }

    def _torch(self, triple: ResolvedTriple) -> dict:
        variant = wheel_variant(triple.cuda)
        index_url = f"{self._wheel_index_url}/{variant}"
        return {
            "torch": str(triple.torch),
            "variant": variant,
            "index_url": index_url,
            "commands": [
                f"{PYENV_ROOT}/shims/python -m pip install --no-cache-dir "
                f"torch=={triple.torch} --index-url {index_url}",
            ],
        }

    @staticmethod
    def _freeze(triple: ResolvedTriple, reference: str) -> dict:
        path = f"{PYENV_ROOT}/shims:{PYENV_ROOT}/bin:"
        if triple.cuda is not None:
            path += f"{_CUDA_PATH}:"
        return {
            "image_reference": reference,
            "env": {"PATH": path + _SYSTEM_PATH, "PYENV_ROOT": PYENV_ROOT},
            "labels": {
                "org.cudalis.python": str(triple.python),
                "org.cudalis.torch": str(triple.torch),
                "org.cudalis.cuda": format_cuda(triple.cuda),
            },
            "cmd": ["bash"],
        }
