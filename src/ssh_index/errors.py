class SshIndexError(Exception):
    pass


class ConfigError(SshIndexError):
    pass


class ConnectError(SshIndexError):
    pass


class ChannelError(SshIndexError):
    pass


class RemoteIOError(SshIndexError):
    pass


class CommandError(SshIndexError):
    def __init__(self, command: str, message: str):
        super().__init__(f"Remote command failed: {command}: {message}")
        self.command = command


class UploadError(SshIndexError):
    pass


class DuplicateRevisionError(UploadError):
    def __init__(self, identifier: str):
        super().__init__(f"Revision already uploaded: {identifier}")
        self.identifier = identifier


class LocalReadError(UploadError):
    pass


class ActivationError(SshIndexError):
    pass


class RevisionNotFoundError(ActivationError):
    def __init__(self, identifier: str):
        super().__init__(f"Revision not found: {identifier}")
        self.identifier = identifier


class InvalidRevisionError(SshIndexError, ValueError):
    pass
