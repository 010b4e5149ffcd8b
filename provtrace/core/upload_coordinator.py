"""Upload coordinator: the single entry point for storing a blob.

Guarantees
----------
- **Single-flight**: while an upload is in flight, further ``upload()``
  calls join it and receive the same CID (or the same error).  Once it
  completes, the next call starts a new upload.
- **Timeout**: every attempt is bounded by ``timeout`` seconds.  On expiry
  the transfer task is cancelled and ``UploadTimeoutError`` is raised.
- **Permission retry**: when the current space refuses the write, a fresh
  local space is created and made current, and the upload is retried; if
  that is refused too, the fallback space is re-asserted and the upload
  retried once more.  At most three attempts, then
  ``UploadPermissionDeniedError``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from provtrace.bridge.storage import StorageAgent, StoragePermissionError, StorageTransportError
from provtrace.core.client_manager import StorageClientManager
from provtrace.core.lifecycle import SingleFlight
from provtrace.errors import (
    UploadError,
    UploadInvalidFileError,
    UploadNetworkError,
    UploadPermissionDeniedError,
    UploadTimeoutError,
)
from provtrace.models.storage import Space, UploadFile, UploadState, UploadTask

logger = logging.getLogger(__name__)

FALLBACK_SPACE_NAME = "local-space-fallback"
MAX_ATTEMPTS = 3
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024

_Send = Callable[[StorageAgent], Awaitable[str]]


class UploadCoordinator:
    """Serializes uploads through one in-flight slot.

    Parameters
    ----------
    clients:
        Manager providing the initialized storage client.
    timeout:
        Wall-clock budget per attempt, in seconds.
    retry_delay:
        Pause after creating the fallback space, before the first retry.
    reassert_delay:
        Pause after re-asserting the fallback space, before the last retry.
    max_bytes:
        Largest accepted file.
    """

    def __init__(
        self,
        clients: StorageClientManager,
        *,
        timeout: float = 120.0,
        retry_delay: float = 0.5,
        reassert_delay: float = 0.3,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._clients = clients
        self._timeout = timeout
        self._retry_delay = retry_delay
        self._reassert_delay = reassert_delay
        self._max_bytes = max_bytes
        self._flight: SingleFlight[str] = SingleFlight("upload")
        self._task: UploadTask | None = None
        self._last_task: UploadTask | None = None

    @property
    def current_task(self) -> UploadTask | None:
        """The upload in flight, if any."""
        return self._task

    @property
    def last_task(self) -> UploadTask | None:
        """The most recently completed upload."""
        return self._last_task

    def active_upload_count(self) -> int:
        return 1 if self._flight.in_flight else 0

    async def upload(self, file: UploadFile) -> str:
        """Store *file* and return its CID."""
        if self._flight.in_flight:
            logger.info("Upload already in flight; %s joins it", file.name)
        else:
            self._validate(file)
        return await self._flight.run(
            lambda: self._run(file.name, file.size, lambda agent: agent.upload_file(file))
        )

    async def upload_directory(self, files: Sequence[UploadFile]) -> str:
        """Store *files* as one directory and return the directory CID.

        Shares the single in-flight slot with ``upload()``.
        """
        files = list(files)
        label = f"directory of {len(files)} files"
        if self._flight.in_flight:
            logger.info("Upload already in flight; %s joins it", label)
        else:
            self._validate_directory(files)
        size = sum(f.size for f in files)
        return await self._flight.run(
            lambda: self._run(label, size, lambda agent: agent.upload_directory(files))
        )

    async def upload_json(self, document: Any, filename: str = "metadata.json") -> str:
        """Serialize *document* as JSON and upload it."""
        if document is None:
            raise UploadInvalidFileError("JSON document cannot be None", file_name=filename)
        try:
            data = json.dumps(document, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise UploadInvalidFileError(
                f"Document is not JSON-serializable: {exc}", file_name=filename
            ) from exc
        name = filename.strip() if filename and filename.strip() else "metadata.json"
        return await self.upload(
            UploadFile(name=name, data=data, content_type="application/json")
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate(self, file: UploadFile) -> None:
        if not file.name or not file.name.strip():
            raise UploadInvalidFileError("File must have a name")
        if file.size == 0:
            raise UploadInvalidFileError(f"File {file.name} is empty", file_name=file.name)
        if file.size > self._max_bytes:
            raise UploadInvalidFileError(
                f"File {file.name} is too large ({file.size} bytes, "
                f"max {self._max_bytes})",
                file_name=file.name,
            )

    def _validate_directory(self, files: list[UploadFile]) -> None:
        if not files:
            raise UploadInvalidFileError("Directory upload needs at least one file")
        names = set()
        for file in files:
            self._validate(file)
            if file.name in names:
                raise UploadInvalidFileError(
                    f"Duplicate file name {file.name} in directory", file_name=file.name
                )
            names.add(file.name)
        total = sum(f.size for f in files)
        if total > self._max_bytes:
            raise UploadInvalidFileError(
                f"Directory is too large ({total} bytes, max {self._max_bytes})"
            )

    async def _run(self, name: str, size: int, send: _Send) -> str:
        self._task = UploadTask(file_name=name, state=UploadState.IN_FLIGHT)
        logger.info("Uploading %s (%d bytes)", name, size)
        try:
            cid = await self._upload_with_recovery(name, send)
        except UploadError as exc:
            self._finish(state=UploadState.FAILED, error=str(exc))
            logger.error("Upload of %s failed: %s", name, exc)
            raise
        except BaseException as exc:
            self._finish(state=UploadState.FAILED, error=str(exc) or type(exc).__name__)
            raise
        self._finish(state=UploadState.SUCCEEDED, cid=cid)
        logger.info("Uploaded %s as %s", name, cid)
        return cid

    def _finish(self, **update: Any) -> None:
        if self._task is not None:
            self._last_task = self._task.model_copy(update=update)
        self._task = None

    async def _upload_with_recovery(self, name: str, send: _Send) -> str:
        handle = await self._clients.get_client()
        agent = handle.agent

        try:
            return await self._attempt(agent, name, send, 1)
        except StoragePermissionError as exc:
            logger.warning(
                "Space %s refused %s (%s); switching to a fresh local space",
                _space_id(handle.current_space),
                name,
                exc,
            )

        try:
            space = await self._clients.bootstrapper.create_local_space(
                agent, FALLBACK_SPACE_NAME
            )
        except (StorageTransportError, OSError) as exc:
            raise UploadPermissionDeniedError(
                f"Upload of {name} was refused and no fallback space could be created: {exc}",
                file_name=name,
                attempts=1,
            ) from exc
        self._clients.record_space(space)
        await asyncio.sleep(self._retry_delay)

        try:
            return await self._attempt(agent, name, send, 2)
        except StoragePermissionError as exc:
            logger.warning("Retry 1 of %s refused (%s); re-asserting %s", name, exc, space.space_id)

        try:
            await agent.set_current_space(space.space_id)
        except (StorageTransportError, OSError) as exc:
            raise UploadPermissionDeniedError(
                f"Upload of {name} was refused and {space.space_id} could not be re-selected: {exc}",
                file_name=name,
                attempts=2,
            ) from exc
        await asyncio.sleep(self._reassert_delay)

        try:
            return await self._attempt(agent, name, send, MAX_ATTEMPTS)
        except StoragePermissionError as exc:
            raise UploadPermissionDeniedError(
                f"Upload of {name} refused after {MAX_ATTEMPTS} attempts: {exc}",
                file_name=name,
                attempts=MAX_ATTEMPTS,
            ) from exc

    async def _attempt(self, agent: StorageAgent, name: str, send: _Send, attempt: int) -> str:
        if self._task is not None:
            self._task = self._task.model_copy(update={"attempt": attempt})
        try:
            cid = await asyncio.wait_for(send(agent), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Upload of %s timed out after %.1fs on attempt %d; transfer aborted",
                name,
                self._timeout,
                attempt,
            )
            raise UploadTimeoutError(
                f"Upload of {name} timed out after {self._timeout:.1f}s",
                file_name=name,
                attempts=attempt,
            ) from exc
        except StoragePermissionError:
            raise
        except (StorageTransportError, OSError) as exc:
            raise UploadNetworkError(
                f"Upload of {name} failed: {exc}",
                file_name=name,
                attempts=attempt,
            ) from exc

        if not cid:
            raise UploadNetworkError(
                f"Storage returned no CID for {name}",
                file_name=name,
                attempts=attempt,
            )
        return str(cid)


def _space_id(space: Space | None) -> str | None:
    return space.space_id if space is not None else None
