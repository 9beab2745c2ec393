"""
ssh-index CLI - manage revisions of a deployed file over SSH/SFTP.

Provides subcommands:
- ssh-index upload: Upload the built file as a new revision
- ssh-index activate: Make an uploaded revision live
- ssh-index list: Show uploaded revisions, newest first
- ssh-index version: Display version information
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from ssh_index.config import DeployConfig, resolve_revision_key
from ssh_index.connection import connect
from ssh_index.deploy import (
    ActivationRequest,
    UploadRequest,
    activate,
    fetch_revisions,
    upload,
)
from ssh_index.errors import ConfigError, SshIndexError
from ssh_index.log import configure_logging


def get_version() -> str:
    """Get the package version."""
    try:
        from importlib.metadata import version

        return version("ssh-index")
    except Exception:
        return "0.1.0"


def cmd_version(args):
    """Handle the 'version' subcommand."""
    print(f"ssh-index version {get_version()}")
    print(f"Python {sys.version}")


def _read_revision_data(path: str | None) -> dict | None:
    if not path:
        return None
    try:
        return json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read revision data from {path}: {e}") from e


def build_config(args) -> DeployConfig:
    config = DeployConfig.from_env()

    for name in (
        "username",
        "host",
        "port",
        "remote_dir",
        "private_key_file",
        "file_pattern",
        "dist_dir",
        "agent",
    ):
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)

    if getattr(args, "allow_overwrite", False):
        config.allow_overwrite = True

    config.revision_key = resolve_revision_key(
        getattr(args, "revision", None),
        _read_revision_data(getattr(args, "revision_data", None)),
    ) or config.revision_key

    config.validate()
    return config


async def _upload(config: DeployConfig) -> None:
    request = UploadRequest(
        remote_dir=config.remote_dir,
        base_pattern=config.file_pattern,
        identifier=config.require_revision_key(),
        local_artifact_path=config.artifact_path,
        allow_overwrite=config.allow_overwrite,
    )
    session = await connect(config.connection_config())
    await upload(session, request)


async def _activate(config: DeployConfig) -> None:
    request = ActivationRequest(
        remote_dir=config.remote_dir,
        base_pattern=config.file_pattern,
        identifier=config.require_revision_key(),
    )
    session = await connect(config.connection_config())
    await activate(session, request)


async def _list(config: DeployConfig, as_json: bool) -> None:
    session = await connect(config.connection_config())
    revisions = await fetch_revisions(session, config.remote_dir, config.file_pattern)

    if as_json:
        print(json.dumps([r.to_dict() for r in revisions], indent=2))
        return

    if not revisions:
        print("No revisions found")
        return

    for revision in revisions:
        marker = "*" if revision.is_active else " "
        print(f"{marker} {revision.identifier}  {revision.timestamp.isoformat()}")


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except SshIndexError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_upload(args):
    """Handle the 'upload' subcommand."""
    _run(_upload(build_config(args)))


def cmd_activate(args):
    """Handle the 'activate' subcommand."""
    _run(_activate(build_config(args)))


def cmd_list(args):
    """Handle the 'list' subcommand."""
    _run(_list(build_config(args), args.json))


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", type=str, default=None, help="Remote host")
    parser.add_argument(
        "--port", type=int, default=None, help="SSH port (default: 22)"
    )
    parser.add_argument("--username", type=str, default=None, help="SSH username")
    parser.add_argument(
        "--remote-dir",
        type=str,
        default=None,
        help="Remote directory holding the live file and its revisions",
    )
    parser.add_argument(
        "--private-key-file",
        type=str,
        default=None,
        help="Private key used to authenticate (~ is expanded)",
    )
    parser.add_argument(
        "--agent",
        type=str,
        default=None,
        help="ssh-agent socket path",
    )
    parser.add_argument(
        "--file-pattern",
        type=str,
        default=None,
        help="Name of the live file (default: index.html)",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssh-index",
        description="ssh-index - upload and activate file revisions over SSH",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show progress messages"
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # 'upload' subcommand
    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a new revision",
        description="Upload <dist-dir>/<file-pattern> as <file-pattern>:<revision>",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ssh-index upload --revision abc123        # Settings from SSH_INDEX_* env vars
  ssh-index upload --revision abc123 --allow-overwrite
  ssh-index upload --revision-data dist/revision.json --dist-dir build
        """,
    )
    _add_connection_args(upload_parser)
    upload_parser.add_argument(
        "--dist-dir",
        type=str,
        default=None,
        help="Local directory containing the built file (default: dist)",
    )
    upload_parser.add_argument("--revision", type=str, default=None)
    upload_parser.add_argument(
        "--revision-data",
        type=str,
        default=None,
        help="JSON file with a revisionKey, used when --revision is absent",
    )
    upload_parser.add_argument(
        "--allow-overwrite",
        action="store_true",
        help="Replace a revision that was already uploaded",
    )
    upload_parser.set_defaults(func=cmd_upload)

    # 'activate' subcommand
    activate_parser = subparsers.add_parser(
        "activate",
        help="Make a revision live",
        description="Copy <file-pattern>:<revision> over <file-pattern> and move the marker",
    )
    _add_connection_args(activate_parser)
    activate_parser.add_argument("--revision", type=str, default=None)
    activate_parser.add_argument("--revision-data", type=str, default=None)
    activate_parser.set_defaults(func=cmd_activate)

    # 'list' subcommand
    list_parser = subparsers.add_parser(
        "list",
        help="List uploaded revisions",
        description="List uploaded revisions, newest first; * marks the active one",
    )
    _add_connection_args(list_parser)
    list_parser.add_argument(
        "--json", action="store_true", help="Print revisions as JSON"
    )
    list_parser.set_defaults(func=cmd_list)

    # 'version' subcommand
    version_parser = subparsers.add_parser(
        "version",
        help="Display version information",
        description="Display ssh-index version and Python version",
    )
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        args.func(args)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
