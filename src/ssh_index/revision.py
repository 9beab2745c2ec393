import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ssh_index.errors import InvalidRevisionError

SEPARATOR = ":"
MARKER_SUFFIX = ".active-revision"


@dataclass(frozen=True)
class RemoteDirectoryEntry:
    filename: str
    modified_at: datetime
    is_dir: bool = False


@dataclass(frozen=True)
class Revision:
    identifier: str
    timestamp: datetime
    is_active: bool = False

    def to_dict(self) -> dict:
        return {
            "revision": self.identifier,
            "timestamp": self.timestamp.isoformat(),
            "active": self.is_active,
        }


def check_identifier(identifier: str) -> None:
    if not identifier:
        raise InvalidRevisionError("Revision identifier must not be empty")
    if "/" in identifier:
        raise InvalidRevisionError(f"Revision identifier must not contain '/': {identifier}")


def encode_revision_filename(base_pattern: str, identifier: str) -> str:
    check_identifier(identifier)
    return f"{base_pattern}{SEPARATOR}{identifier}"


def decode_revision_filename(base_pattern: str, filename: str) -> Optional[str]:
    match = re.fullmatch(re.escape(base_pattern + SEPARATOR) + "(.+)", filename)
    if match is None:
        return None
    return match.group(1)


def encode_marker_filename(identifier: str) -> str:
    check_identifier(identifier)
    return f"{identifier}{MARKER_SUFFIX}"


def decode_marker_filename(filename: str) -> Optional[str]:
    if not filename.endswith(MARKER_SUFFIX):
        return None
    identifier = filename[: -len(MARKER_SUFFIX)]
    return identifier or None
