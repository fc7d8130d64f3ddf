"""Cudalis: reproducible container images for Python + PyTorch + CUDA.

Resolves partial version constraints against a compatibility catalog,
turns the resolved triple into a deterministic five-step build plan, and
executes it with per-step layer caching so a failed or interrupted build
resumes where it stopped.
"""

__version__ = "0.1.0"
__description__ = "Reproducible Python + PyTorch + CUDA container images"

from cudalis.core.catalog import Catalog, load_catalog
from cudalis.core.orchestrator import Orchestrator
from cudalis.core.planner import PlanGenerator
from cudalis.core.resolver import Resolver

__all__ = [
    "Catalog",
    "Orchestrator",
    "PlanGenerator",
    "Resolver",
    "load_catalog",
    "__version__",
]
