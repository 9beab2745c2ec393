from ssh_index.config import DeployConfig, resolve_revision_key
from ssh_index.connection import (
    ConnectionConfig,
    FileChannel,
    Session,
    close,
    connect,
    list_directory,
    open_file_channel,
    run_command,
    write_file,
)
from ssh_index.deploy import (
    ActivationRequest,
    UploadRequest,
    activate,
    fetch_revisions,
    upload,
)
from ssh_index.errors import (
    ActivationError,
    ChannelError,
    CommandError,
    ConfigError,
    ConnectError,
    DuplicateRevisionError,
    InvalidRevisionError,
    LocalReadError,
    RemoteIOError,
    RevisionNotFoundError,
    SshIndexError,
    UploadError,
)
from ssh_index.revision import (
    MARKER_SUFFIX,
    SEPARATOR,
    RemoteDirectoryEntry,
    Revision,
    decode_marker_filename,
    check_identifier,
    decode_revision_filename,
    encode_marker_filename,
    encode_revision_filename,
)
from ssh_index.scanner import scan

__all__ = [
    "DeployConfig",
    "resolve_revision_key",
    "ConnectionConfig",
    "FileChannel",
    "Session",
    "close",
    "connect",
    "list_directory",
    "open_file_channel",
    "run_command",
    "write_file",
    "ActivationRequest",
    "UploadRequest",
    "activate",
    "fetch_revisions",
    "upload",
    "ActivationError",
    "ChannelError",
    "CommandError",
    "ConfigError",
    "ConnectError",
    "DuplicateRevisionError",
    "InvalidRevisionError",
    "LocalReadError",
    "RemoteIOError",
    "RevisionNotFoundError",
    "SshIndexError",
    "UploadError",
    "MARKER_SUFFIX",
    "SEPARATOR",
    "RemoteDirectoryEntry",
    "Revision",
    "decode_marker_filename",
    "check_identifier",
    "decode_revision_filename",
    "encode_marker_filename",
    "encode_revision_filename",
    "scan",
]
