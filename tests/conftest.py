import fnmatch
import posixpath
import shlex
import stat
import threading
from datetime import datetime, timezone
from pathlib import Path

import paramiko
import pytest

from ssh_index.connection import Session

DATE1 = datetime(2015, 12, 11, 1, 0, 0, tzinfo=timezone.utc)
DATE2 = datetime(2015, 12, 11, 2, 0, 0, tzinfo=timezone.utc)


class FakeRemote:
    """In-memory remote filesystem keyed by absolute path."""

    def __init__(self):
        self.files: dict[str, tuple[bytes, float]] = {}
        self.clock = DATE2.timestamp()
        self.lock = threading.Lock()

    def add(self, path: str, content: bytes = b"", mtime: datetime | None = None):
        self.clock += 1
        timestamp = mtime.timestamp() if mtime else self.clock
        self.files[path] = (content, timestamp)

    def read(self, path: str) -> bytes:
        return self.files[path][0]

    def names(self, directory: str) -> list[str]:
        return [
            posixpath.basename(p)
            for p in self.files
            if posixpath.dirname(p) == directory
        ]

    def execute(self, command_line: str) -> int:
        with self.lock:
            return self._execute(command_line)

    def _execute(self, command_line: str) -> int:
        for part in command_line.split(" && "):
            argv = shlex.split(part)
            status = self._execute_one(argv)
            if status != 0:
                return status
        return 0

    def _execute_one(self, argv: list[str]) -> int:
        program, args = argv[0], argv[1:]
        if program == "cp":
            source, destination = args
            if source not in self.files:
                return 1
            self.add(destination, self.read(source))
            return 0
        if program == "rm":
            (pattern,) = args
            matches = [p for p in self.files if fnmatch.fnmatch(p, pattern)]
            if not matches:
                return 1
            for path in matches:
                del self.files[path]
            return 0
        if program == "touch":
            (path,) = args
            self.add(path)
            return 0
        return 127


class FakeRemoteFile:
    def __init__(self, sftp: "FakeSFTP", path: str):
        self.sftp = sftp
        self.path = path
        self.buffer = b""

    def write(self, data: bytes):
        if self.sftp.fail_write:
            raise OSError("Failure")
        self.buffer += data

    def close(self):
        self.sftp.remote.add(self.path, self.buffer[: self.sftp.truncate_to])

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FakeSFTP:
    def __init__(self, remote: FakeRemote):
        self.remote = remote
        self.fail_listdir = False
        self.fail_write = False
        self.truncate_to = None
        self.writes: list[str] = []
        self.closed = False

    def listdir_attr(self, path: str):
        if self.fail_listdir:
            raise FileNotFoundError(2, "No such file", path)
        entries = []
        for name in self.remote.names(path):
            content, mtime = self.remote.files[posixpath.join(path, name)]
            attrs = paramiko.SFTPAttributes()
            attrs.filename = name
            attrs.st_mtime = int(mtime)
            attrs.st_size = len(content)
            attrs.st_mode = stat.S_IFREG | 0o644
            entries.append(attrs)
        return entries

    def open(self, path: str, mode: str = "r"):
        self.writes.append(path)
        return FakeRemoteFile(self, path)

    def stat(self, path: str):
        attrs = paramiko.SFTPAttributes()
        attrs.st_size = len(self.remote.read(path))
        return attrs

    def close(self):
        self.closed = True


class FakeChannel:
    def __init__(self, exit_status: int):
        self.exit_status = exit_status

    def recv_exit_status(self) -> int:
        return self.exit_status


class FakeStream:
    def __init__(self, exit_status: int = 0, data: bytes = b""):
        self.channel = FakeChannel(exit_status)
        self.data = data

    def read(self) -> bytes:
        return self.data


class FakeTransport:
    def __init__(self):
        self.active = True

    def is_active(self) -> bool:
        return self.active


class FakeSSHClient:
    def __init__(self, remote: FakeRemote):
        self.remote = remote
        self.sftp = FakeSFTP(remote)
        self.transport = FakeTransport()
        self.commands: list[str] = []
        self.fail_commands: set[str] = set()
        self.reject_sftp = False
        self.close_count = 0

    def get_transport(self):
        return self.transport

    def open_sftp(self):
        if self.reject_sftp:
            raise paramiko.SSHException("Administratively prohibited")
        return self.sftp

    def exec_command(self, command_line: str):
        self.commands.append(command_line)
        program = command_line.split()[0]
        if program in self.fail_commands:
            raise paramiko.SSHException("Channel closed")
        status = self.remote.execute(command_line)
        return None, FakeStream(status), FakeStream(data=b"")

    def close(self):
        self.close_count += 1
        self.transport.active = False


@pytest.fixture
def remote():
    remote = FakeRemote()
    remote.add("/directory/123.active-revision", mtime=DATE1)
    remote.add("/directory/test.html", b"live", mtime=DATE1)
    remote.add("/directory/test.html:123", b"revision 123", mtime=DATE1)
    remote.add("/directory/test.html:456", b"revision 456", mtime=DATE2)
    return remote


@pytest.fixture
def client(remote):
    return FakeSSHClient(remote)


@pytest.fixture
def session(client):
    return Session(client, "some-username@some-host:22")


@pytest.fixture
def artifact(tmp_path) -> Path:
    path = tmp_path / "dist" / "test.html"
    path.parent.mkdir()
    path.write_bytes(b"<html>new</html>")
    return path


class RecordingLog:
    def __init__(self):
        self.messages: list[tuple[str, bool]] = []

    def __call__(self, message: str, verbose: bool = False) -> None:
        self.messages.append((message, verbose))


@pytest.fixture
def log():
    return RecordingLog()
