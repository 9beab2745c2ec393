import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from ssh_index.connection import ConnectionConfig
from ssh_index.errors import ConfigError
from ssh_index.revision import check_identifier

ENV_PREFIX = "SSH_INDEX_"

REQUIRED_KEYS = ("username", "host", "port", "remote_dir", "private_key_file")

_BOOL_TRUE = {"1", "true", "yes", "on"}


@dataclass
class DeployConfig:
    username: Optional[str] = None
    host: Optional[str] = None
    port: int = 22
    remote_dir: Optional[str] = None
    private_key_file: Optional[str] = None
    file_pattern: str = "index.html"
    allow_overwrite: bool = False
    agent: Optional[str] = None
    passphrase: Optional[str] = None
    dist_dir: str = "dist"
    revision_key: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            if f.name == "port":
                try:
                    values[f.name] = int(raw)
                except ValueError as e:
                    raise ConfigError(f"Invalid port: {raw}") from e
            elif f.name == "allow_overwrite":
                values[f.name] = raw.strip().lower() in _BOOL_TRUE
            else:
                values[f.name] = raw
        return cls(**values)

    def validate(self) -> None:
        missing = [key for key in REQUIRED_KEYS if not getattr(self, key)]
        if missing:
            raise ConfigError(f"Missing required config: {', '.join(missing)}")

    @property
    def artifact_path(self) -> Path:
        return Path(self.dist_dir) / self.file_pattern

    def require_revision_key(self) -> str:
        if not self.revision_key:
            raise ConfigError("No revision key given (use --revision)")
        check_identifier(self.revision_key)
        return self.revision_key

    def connection_config(self) -> ConnectionConfig:
        self.validate()
        return ConnectionConfig(
            host=self.host,
            username=self.username,
            port=self.port,
            private_key_file=self.private_key_file,
            passphrase=self.passphrase,
            agent=self.agent,
        )


def resolve_revision_key(
    command_revision: Optional[str], revision_data: Optional[dict] = None
) -> Optional[str]:
    if command_revision:
        return command_revision
    if revision_data:
        return revision_data.get("revisionKey") or revision_data.get("revision_key")
    return None
