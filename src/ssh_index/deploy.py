import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import aiofiles

from ssh_index.connection import (
    Session,
    close,
    open_file_channel,
    remote_path,
    run_command,
    write_file,
)
from ssh_index.errors import (
    ActivationError,
    CommandError,
    DuplicateRevisionError,
    LocalReadError,
    RevisionNotFoundError,
)
from ssh_index.log import LogCallback, default_log
from ssh_index.revision import (
    MARKER_SUFFIX,
    Revision,
    check_identifier,
    encode_marker_filename,
    encode_revision_filename,
)
from ssh_index.scanner import scan


@dataclass
class UploadRequest:
    remote_dir: str
    base_pattern: str
    identifier: str
    local_artifact_path: Union[str, Path]
    allow_overwrite: bool = False


@dataclass
class ActivationRequest:
    remote_dir: str
    base_pattern: str
    identifier: str


async def _read_artifact(path: Union[str, Path]) -> bytes:
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except OSError as e:
        raise LocalReadError(f"Unable to read {path}: {e}") from e


async def _scan_session(
    session: Session, remote_dir: str, base_pattern: str, log: LogCallback
) -> list[Revision]:
    channel = await open_file_channel(session)
    log(f"Reading remote directory: {remote_dir}", verbose=True)
    return await scan(channel, remote_dir, base_pattern)


async def fetch_revisions(
    session: Session,
    remote_dir: str,
    base_pattern: str,
    log: LogCallback = default_log,
) -> list[Revision]:
    try:
        return await _scan_session(session, remote_dir, base_pattern, log)
    finally:
        close(session)


async def upload(
    session: Session, request: UploadRequest, log: LogCallback = default_log
) -> None:
    """Upload the local artifact as a new revision.

    The overwrite check runs against a fresh listing before anything is
    written, so a rejected upload leaves the remote directory untouched.
    """
    try:
        check_identifier(request.identifier)
        channel = await open_file_channel(session)
        log(f"Reading remote directory: {request.remote_dir}", verbose=True)
        revisions = await scan(channel, request.remote_dir, request.base_pattern)

        exists = any(r.identifier == request.identifier for r in revisions)
        if exists and not request.allow_overwrite:
            raise DuplicateRevisionError(request.identifier)

        data = await _read_artifact(request.local_artifact_path)
        destination = remote_path(
            request.remote_dir,
            encode_revision_filename(request.base_pattern, request.identifier),
        )

        log(f"Uploading {request.local_artifact_path} to {destination}", verbose=True)
        await write_file(channel, destination, data)
    finally:
        close(session)

    log(f"✔  {destination}", verbose=True)


def _copy_command(source: str, destination: str) -> str:
    return f"cp {shlex.quote(source)} {shlex.quote(destination)}"


def _marker_command(remote_dir: str, identifier: str) -> str:
    quoted_dir = shlex.quote(remote_dir)
    marker = shlex.quote(remote_path(remote_dir, encode_marker_filename(identifier)))
    return f"rm {quoted_dir}/*{MARKER_SUFFIX} && touch {marker}"


async def activate(
    session: Session, request: ActivationRequest, log: LogCallback = default_log
) -> None:
    """Point the live file at an uploaded revision and move the marker.

    The copy and the marker rewrite run side by side on the same session.
    Neither is rolled back if the other fails.
    """
    try:
        check_identifier(request.identifier)
        revisions = await _scan_session(
            session, request.remote_dir, request.base_pattern, log
        )
        if not any(r.identifier == request.identifier for r in revisions):
            raise RevisionNotFoundError(request.identifier)

        source = remote_path(
            request.remote_dir,
            encode_revision_filename(request.base_pattern, request.identifier),
        )
        destination = remote_path(request.remote_dir, request.base_pattern)

        log(f"Activating {request.identifier}", verbose=True)
        results = await asyncio.gather(
            run_command(session, _copy_command(source, destination)),
            run_command(session, _marker_command(request.remote_dir, request.identifier)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, CommandError):
                raise ActivationError(
                    f"Activation of {request.identifier} failed: {result}"
                ) from result
            if isinstance(result, BaseException):
                raise result
    finally:
        close(session)

    log(f"✔  {source} => {destination}", verbose=True)
