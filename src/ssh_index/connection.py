import asyncio
import contextlib
import io
import os
import posixpath
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import paramiko
from loguru import logger

from ssh_index.errors import (
    ChannelError,
    CommandError,
    ConnectError,
    RemoteIOError,
)
from ssh_index.revision import RemoteDirectoryEntry

_TRANSPORT_ERRORS = (OSError, paramiko.SSHException, EOFError)
_KEY_TYPES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


@dataclass
class ConnectionConfig:
    host: str
    username: str
    port: int = 22
    private_key_file: Optional[str] = None
    private_key: Optional[Union[paramiko.PKey, str]] = None
    passphrase: Optional[str] = None
    agent: Optional[str] = None

    @property
    def address(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


class Session:
    """One authenticated SSH connection and the SFTP channels opened on it.

    A session belongs to exactly one high-level operation. Once closed it
    cannot be reused.
    """

    def __init__(self, client: paramiko.SSHClient, address: str = ""):
        self.client = client
        self.address = address
        self.channels: list["FileChannel"] = []
        self.closed = False

    @property
    def is_ready(self) -> bool:
        if self.closed:
            return False
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()


@dataclass
class FileChannel:
    session: Session
    sftp: paramiko.SFTPClient


def _load_private_key(material: str, passphrase: Optional[str]) -> paramiko.PKey:
    last_error: Optional[Exception] = None
    for key_type in _KEY_TYPES:
        try:
            return key_type.from_private_key(io.StringIO(material), password=passphrase)
        except paramiko.PasswordRequiredException:
            raise
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise paramiko.SSHException(f"Unsupported private key format: {last_error}")


def _resolve_private_key(config: ConnectionConfig) -> Optional[paramiko.PKey]:
    if isinstance(config.private_key, paramiko.PKey):
        return config.private_key

    if config.private_key is not None:
        material = config.private_key
        source = "supplied private key"
    elif config.private_key_file:
        key_path = Path(config.private_key_file).expanduser()
        try:
            material = key_path.read_text()
        except OSError as e:
            raise ConnectError(f"Unable to read private key file {key_path}: {e}") from e
        source = str(key_path)
    elif config.agent:
        return None
    else:
        raise ConnectError(
            f"No private key or agent configured for {config.address}"
        )

    try:
        return _load_private_key(material, config.passphrase)
    except paramiko.SSHException as e:
        raise ConnectError(f"Unable to load {source}: {e}") from e


@contextlib.contextmanager
def _agent_socket(agent: Optional[str]):
    # paramiko only reads the agent socket from SSH_AUTH_SOCK.
    if not agent:
        yield
        return

    previous = os.environ.get("SSH_AUTH_SOCK")
    os.environ["SSH_AUTH_SOCK"] = agent
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop("SSH_AUTH_SOCK", None)
        else:
            os.environ["SSH_AUTH_SOCK"] = previous


async def connect(config: ConnectionConfig) -> Session:
    pkey = await asyncio.to_thread(_resolve_private_key, config)

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    connect_kwargs = {
        "hostname": config.host,
        "port": int(config.port or 22),
        "username": config.username,
        "pkey": pkey,
        "passphrase": config.passphrase,
        "allow_agent": bool(config.agent),
        "look_for_keys": False,
    }

    logger.debug(f"Connecting to {config.address}")
    try:
        with _agent_socket(config.agent):
            await asyncio.to_thread(client.connect, **connect_kwargs)
    except paramiko.AuthenticationException as e:
        client.close()
        raise ConnectError(f"Authentication failed for {config.address}: {e}") from e
    except _TRANSPORT_ERRORS as e:
        client.close()
        raise ConnectError(f"Unable to connect to {config.address}: {e}") from e

    logger.debug(f"Connected to {config.address}")
    return Session(client, config.address)


async def open_file_channel(session: Session) -> FileChannel:
    if not session.is_ready:
        close(session)
        raise ChannelError(f"Session to {session.address} is not ready")

    try:
        sftp = await asyncio.to_thread(session.client.open_sftp)
    except _TRANSPORT_ERRORS as e:
        close(session)
        raise ChannelError(f"SFTP channel rejected by {session.address}: {e}") from e

    channel = FileChannel(session=session, sftp=sftp)
    session.channels.append(channel)
    return channel


def _to_entry(attrs: paramiko.SFTPAttributes) -> RemoteDirectoryEntry:
    mtime = attrs.st_mtime or 0
    is_dir = attrs.st_mode is not None and stat.S_ISDIR(attrs.st_mode)
    return RemoteDirectoryEntry(
        filename=attrs.filename,
        modified_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
        is_dir=is_dir,
    )


async def list_directory(channel: FileChannel, path: str) -> list[RemoteDirectoryEntry]:
    if channel.session.closed:
        raise RemoteIOError(f"Cannot list {path}: session is closed")

    try:
        listing = await asyncio.to_thread(channel.sftp.listdir_attr, path)
    except _TRANSPORT_ERRORS as e:
        close(channel.session)
        raise RemoteIOError(f"Unable to list {path}: {e}") from e

    return [_to_entry(attrs) for attrs in listing]


def _write_and_verify(sftp: paramiko.SFTPClient, path: str, data: bytes) -> None:
    with sftp.open(path, "wb") as remote_file:
        remote_file.write(data)

    written = sftp.stat(path).st_size
    if written is not None and written != len(data):
        raise RemoteIOError(
            f"Stream to {path} ended early ({written} of {len(data)} bytes)"
        )


async def write_file(channel: FileChannel, path: str, data: bytes) -> None:
    if channel.session.closed:
        raise RemoteIOError(f"Cannot write {path}: session is closed")

    try:
        await asyncio.to_thread(_write_and_verify, channel.sftp, path, data)
    except RemoteIOError:
        close(channel.session)
        raise
    except _TRANSPORT_ERRORS as e:
        close(channel.session)
        raise RemoteIOError(f"Unable to write {path}: {e}") from e

    logger.debug(f"Wrote {len(data)} bytes to {path}")


def _exec(client: paramiko.SSHClient, command_line: str) -> tuple[int, str]:
    _stdin, stdout, stderr = client.exec_command(command_line)
    exit_status = stdout.channel.recv_exit_status()
    return exit_status, stderr.read().decode("utf-8", errors="replace")


async def run_command(session: Session, command_line: str) -> None:
    if session.closed:
        raise CommandError(command_line, "session is closed")

    logger.debug(f"Running on {session.address}: {command_line}")
    try:
        exit_status, err = await asyncio.to_thread(_exec, session.client, command_line)
    except _TRANSPORT_ERRORS as e:
        raise CommandError(command_line, str(e)) from e

    # Exit status is reported but never fails the command.
    if exit_status != 0:
        logger.warning(
            f"Remote command exited {exit_status}: {command_line}"
            + (f" ({err.strip()})" if err.strip() else "")
        )


def close(session: Session) -> None:
    if session.closed:
        return
    session.closed = True

    for channel in session.channels:
        try:
            channel.sftp.close()
        except _TRANSPORT_ERRORS as e:
            logger.debug(f"Ignoring error closing SFTP channel: {e}")
    session.channels.clear()

    session.client.close()
    logger.debug(f"Closed session to {session.address}")


def remote_path(remote_dir: str, filename: str) -> str:
    return posixpath.join(remote_dir, filename)
