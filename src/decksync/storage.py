"""Temporary image storage backends.

The remote presentation API only accepts images by public URL, so new
images are uploaded to a storage backend first and deleted again once the
plan has been applied. A backend implements :class:`Storage`.

Two implementations ship with decksync:

* :class:`CommandStorage` runs user-supplied shell commands.
* :class:`MemoryStorage` keeps the bytes in memory; for tests and dry
  runs.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from decksync.errors import DeckSyncStorageError
from decksync.observability import get_logger

_log = get_logger(__name__)

ENV_UPLOAD_MIME = "DECK_UPLOAD_MIME"
ENV_DELETE_ID = "DECK_DELETE_ID"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")


@runtime_checkable
class Storage(Protocol):
    """Async storage backend for temporary image copies."""

    async def upload(self, data: bytes, mime_type: str) -> tuple[str, str]:
        """Store *data* and return ``(public_url, resource_id)``.

        A backend that fails after the bytes were stored must either
        delete them itself or raise :class:`~decksync.errors.DeckSyncStorageError`
        with the created ID under ``context["resource_id"]``.
        """
        ...

    async def delete(self, resource_id: str) -> None:
        """Delete a previously uploaded resource."""
        ...


def expand_placeholders(command: str, values: dict[str, Any]) -> str:
    """Replace ``{{name}}`` and ``{{env.NAME}}`` placeholders in *command*.

    Unknown names expand to an empty string.

    Examples
    --------
    >>> expand_placeholders("put --type {{mime}}", {"mime": "image/png"})
    'put --type image/png'
    """
    def lookup(match: re.Match[str]) -> str:
        value: Any = values
        for part in match.group(1).split("."):
            if not isinstance(value, dict) or part not in value:
                return ""
            value = value[part]
        return str(value)

    return _PLACEHOLDER_RE.sub(lookup, command)


def detect_shell() -> str:
    """Return ``$SHELL``, ``/bin/bash`` or ``/bin/sh``, whichever exists first."""
    for shell in (os.environ.get("SHELL", ""), "/bin/bash", "/bin/sh"):
        if shell and Path(shell).exists():
            return shell
    raise DeckSyncStorageError(
        message="Failed to detect a shell to run storage commands",
        context={"operation": "detect_shell"},
    )


class CommandStorage:
    """Storage backed by external commands run through the shell.

    The upload command receives the image bytes on stdin and the MIME type
    in ``$DECK_UPLOAD_MIME`` (also available as ``{{mime}}``). It must
    print the public URL on the first line of stdout and the resource ID on
    the second. The delete command receives the ID in ``$DECK_DELETE_ID``
    (also ``{{id}}``). Both commands may use ``{{env.NAME}}``.

    Parameters
    ----------
    upload_command:
        Shell command used by :meth:`upload`.
    delete_command:
        Shell command used by :meth:`delete`. When empty, deletion is a
        no-op.
    """

    def __init__(self, upload_command: str, delete_command: str = "") -> None:
        if not upload_command:
            raise ValueError("upload_command must not be empty")
        self.upload_command = upload_command
        self.delete_command = delete_command

    async def upload(self, data: bytes, mime_type: str) -> tuple[str, str]:
        env = {**os.environ, ENV_UPLOAD_MIME: mime_type}
        command = expand_placeholders(self.upload_command, {"mime": mime_type, "env": env})
        stdout = await self._run("upload", command, env, data)

        lines = stdout.decode("utf-8", errors="replace").splitlines()
        public_url = lines[0].strip() if lines else ""
        resource_id = lines[1].strip() if len(lines) > 1 else ""

        if not resource_id:
            raise DeckSyncStorageError(
                message="Upload command did not output a resource ID",
                context={"operation": "upload", "command": command},
            )
        if not public_url:
            raise DeckSyncStorageError(
                message="Upload command returned an empty public URL",
                context={"operation": "upload", "command": command, "resource_id": resource_id},
            )
        return public_url, resource_id

    async def delete(self, resource_id: str) -> None:
        if not self.delete_command:
            return
        env = {**os.environ, ENV_DELETE_ID: resource_id}
        command = expand_placeholders(self.delete_command, {"id": resource_id, "env": env})
        await self._run("delete", command, env, None)

    async def _run(self, operation: str, command: str, env: dict[str, str], stdin: bytes | None) -> bytes:
        process = await asyncio.create_subprocess_exec(
            detect_shell(),
            "-c",
            command,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        stdout, stderr = await process.communicate(stdin)
        if process.returncode != 0:
            raise DeckSyncStorageError(
                message=(
                    f"Failed to run {operation} command (exit code {process.returncode}): "
                    f"{stderr.decode('utf-8', errors='replace').strip()}"
                ),
                context={
                    "operation": operation,
                    "command": command,
                    "exit_code": process.returncode,
                    "stderr": stderr.decode("utf-8", errors="replace"),
                },
            )
        _log.debug(
            "storage command finished",
            extra={"extra_fields": {"op": operation, "command": command}},
        )
        return stdout


class MemoryStorage:
    """In-memory storage. Public URLs use the ``memory://`` scheme."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []

    async def upload(self, data: bytes, mime_type: str) -> tuple[str, str]:
        resource_id = uuid.uuid4().hex
        self.objects[resource_id] = (data, mime_type)
        return f"memory://{resource_id}", resource_id

    async def delete(self, resource_id: str) -> None:
        if resource_id not in self.objects:
            raise DeckSyncStorageError(
                message=f"Unknown resource {resource_id}",
                context={"operation": "delete", "resource_id": resource_id},
            )
        del self.objects[resource_id]
        self.deleted.append(resource_id)
