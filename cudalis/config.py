"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
CUDALIS_* environment variables. Settings are constructed explicitly by
the CLI and passed down; nothing reads them from module state.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class CudalisSettings(BaseSettings):
    """Cudalis settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CUDALIS_LOG_LEVEL=DEBUG
        export CUDALIS_CATALOG_PATH=/etc/cudalis/catalog.json
        export CUDALIS_STATE_DIR=/var/cache/cudalis

    Or via .env file::

        CUDALIS_IMAGE_REPOSITORY=registry.local/ml/cudalis
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CUDALIS_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "WARNING"

    # Catalog; None means the table shipped with the package
    catalog_path: Path | None = None

    # Step cache
    state_dir: Path = Path(".cudalis")

    # Images
    image_repository: str = "cudalis"
    cache_repository: str = "cudalis-cache"
    wheel_index_url: str = "https://download.pytorch.org/whl"

    # Docker
    docker_timeout_seconds: int = 3600

    # macOS hosts cannot run CUDA containers; default to CPU-only there
    cpu_only_on_macos: bool = True

    @property
    def step_cache_path(self) -> Path:
        return self.state_dir / "steps.db"
