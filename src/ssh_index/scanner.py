from typing import Optional

from loguru import logger

from ssh_index.connection import FileChannel, list_directory
from ssh_index.revision import (
    RemoteDirectoryEntry,
    Revision,
    decode_marker_filename,
    decode_revision_filename,
)


def build_revisions(
    entries: list[RemoteDirectoryEntry], base_pattern: str
) -> list[Revision]:
    """Derive the sorted revision list from one directory snapshot.

    If several marker files exist, the last one in listing order decides which
    revision is active.
    """
    current: Optional[str] = None
    markers = []
    candidates: list[tuple[str, RemoteDirectoryEntry]] = []

    for entry in entries:
        marker = decode_marker_filename(entry.filename)
        if marker is not None:
            markers.append(marker)
            current = marker
            continue

        if entry.is_dir:
            continue

        identifier = decode_revision_filename(base_pattern, entry.filename)
        if identifier is not None:
            candidates.append((identifier, entry))

    if len(markers) > 1:
        logger.warning(
            f"Found {len(markers)} active-revision markers ({', '.join(markers)}); "
            f"using {current}"
        )

    revisions = [
        Revision(
            identifier=identifier,
            timestamp=entry.modified_at,
            is_active=identifier == current,
        )
        for identifier, entry in candidates
    ]
    revisions.sort(key=lambda r: (r.timestamp, r.identifier), reverse=True)
    return revisions


async def scan(
    channel: FileChannel, remote_dir: str, base_pattern: str
) -> list[Revision]:
    entries = await list_directory(channel, remote_dir)
    return build_revisions(entries, base_pattern)
