"""Docker build backend — applies plan steps through the Docker engine.

Each step is committed as its own image, tagged ``<cache_repository>:<key>``.
That tag is the layer cache: a step whose tag exists is reusable, and the
next step starts a throwaway container from it.

- base_image: pull the recipe image and tag it under the step's key.
- command steps: run each command with ``bash -c`` in a container created
  from the parent layer, then commit the container.
- freeze: commit the final layer with ENV/LABEL/CMD changes and tag it
  with the plan's image reference. The freeze layer only counts as present
  while that reference still exists.

A failed command leaves nothing under the step's key; the container is
always removed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

import docker
from docker.errors import DockerException, ImageNotFound
from docker.utils import parse_repository_tag

from cudalis.backends import BackendError
from cudalis.models.plan import BuildStep, StepKind
from cudalis.models.results import CacheContext, StepResult

logger = logging.getLogger(__name__)

_EXEC_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

# Set on freeze layers; names the image reference the layer was tagged as.
IMAGE_REFERENCE_LABEL = "org.cudalis.image-reference"


def connect_docker(timeout: int = 3600) -> docker.DockerClient:
    """Connect to the local Docker engine or raise BackendError."""
    try:
        client = docker.from_env(timeout=timeout)
        client.ping()
    except DockerException as exc:
        raise BackendError(f"Docker is not available: {exc}") from exc
    return client


class DockerBackend:
    """Build backend driving a Docker engine via the docker SDK.

    Parameters
    ----------
    client:
        A ``docker.DockerClient``. Connects with ``docker.from_env`` if None.
    cache_repository:
        Repository under which per-step layers are tagged.
    timeout:
        Engine API timeout in seconds; steps like ``pyenv install`` are slow.
    output:
        Optional callback receiving command output as it streams.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        *,
        cache_repository: str = "cudalis-cache",
        timeout: int = 3600,
        output: Callable[[str], None] | None = None,
    ) -> None:
        self._client = client if client is not None else connect_docker(timeout)
        self._cache_repository = cache_repository
        self._output = output

    @property
    def backend_name(self) -> str:
        return "docker"

    def cache_reference(self, cache_key: str) -> str:
        return f"{self._cache_repository}:{cache_key}"

    def has_layer(self, cache_key: str) -> bool:
        """True when the layer exists, and for a freeze layer its final tag too."""
        try:
            image = self._client.images.get(self.cache_reference(cache_key))
            reference = image.labels.get(IMAGE_REFERENCE_LABEL)
            if reference is not None:
                self._client.images.get(reference)
        except ImageNotFound:
            return False
        except DockerException as exc:
            raise BackendError(
                f"Docker error looking up layer {cache_key[:12]}: {exc}"
            ) from exc
        return True

    def apply_step(self, step: BuildStep, context: CacheContext) -> StepResult:
        logger.info(
            "Applying step %d (%s) -> %s",
            step.index, step.kind.value, context.cache_key[:12],
        )
        try:
            if step.kind is StepKind.BASE_IMAGE:
                return self._pull_base(step, context)
            if context.parent_key is None:
                return StepResult(
                    success=False,
                    diagnostic=f"Step {step.index} ({step.kind.value}) has no parent layer",
                )
            if step.kind is StepKind.FREEZE:
                return self._freeze(step, context)
            return self._run_commands(step, context)
        except DockerException as exc:
            logger.warning("Docker error in step %d: %s", step.index, exc)
            return StepResult(success=False, diagnostic=f"Docker error: {exc}")

    # ------------------------------------------------------------------
    # Step kinds
    # ------------------------------------------------------------------

    def _pull_base(self, step: BuildStep, context: CacheContext) -> StepResult:
        reference = step.parameters["image"]
        repository, tag = parse_repository_tag(reference)
        image = self._client.images.pull(repository, tag=tag or "latest")
        image.tag(self._cache_repository, context.cache_key)
        return StepResult(success=True, log=f"Pulled {reference}")

    def _run_commands(self, step: BuildStep, context: CacheContext) -> StepResult:
        container = self._client.containers.create(
            self.cache_reference(context.parent_key),
            command=["sleep", "infinity"],
            environment=_EXEC_ENV,
            tty=True,
        )
        log: list[str] = []
        try:
            container.start()
            for command in step.commands:
                self._emit(f"[+] {command}\n")
                exit_code, output = self._exec(container.id, command)
                log.append(output)
                if exit_code != 0:
                    return StepResult(
                        success=False,
                        diagnostic=f"Command exited with status {exit_code}: {command}",
                        log="".join(log),
                    )
            container.commit(
                repository=self._cache_repository,
                tag=context.cache_key,
                changes=['CMD ["bash"]'],
            )
        finally:
            container.remove(force=True, v=True)
        return StepResult(success=True, log="".join(log))

    def _freeze(self, step: BuildStep, context: CacheContext) -> StepResult:
        params = step.parameters
        changes = [f"ENV {name}={value}" for name, value in sorted(params["env"].items())]
        changes += [
            f"LABEL {name}={json.dumps(value)}"
            for name, value in sorted(params["labels"].items())
        ]
        changes.append(
            f"LABEL {IMAGE_REFERENCE_LABEL}={json.dumps(params['image_reference'])}"
        )
        changes.append(f"CMD {json.dumps(params['cmd'])}")

        container = self._client.containers.create(
            self.cache_reference(context.parent_key)
        )
        try:
            image = container.commit(
                repository=self._cache_repository,
                tag=context.cache_key,
                changes=changes,
            )
        finally:
            container.remove(force=True, v=True)

        repository, tag = parse_repository_tag(params["image_reference"])
        image.tag(repository, tag or "latest")
        return StepResult(success=True, log=f"Tagged {params['image_reference']}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _exec(self, container_id: str, command: str) -> tuple[int, str]:
        """Run one command, streaming output; return (exit code, output)."""
        api = self._client.api
        exec_id = api.exec_create(
            container_id, ["bash", "-c", command], environment=_EXEC_ENV
        )["Id"]
        chunks: list[str] = []
        for chunk in api.exec_start(exec_id, stream=True):
            text = chunk.decode("utf-8", errors="replace")
            chunks.append(text)
            self._emit(text)
        exit_code = api.exec_inspect(exec_id)["ExitCode"]
        return int(exit_code or 0), "".join(chunks)

    def _emit(self, text: str) -> None:
        if self._output is not None:
            self._output(text)
