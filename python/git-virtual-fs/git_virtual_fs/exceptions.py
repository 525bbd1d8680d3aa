"""Custom error hierarchy for git-virtual-fs."""

from __future__ import annotations


class GitVirtualFsError(RuntimeError):
    """Base error for all custom exceptions."""


class ConfigError(GitVirtualFsError):
    """Raised when an environment override is present but unusable."""


class ValidationError(GitVirtualFsError):
    """Raised when a caller passes an invalid argument."""


class InvalidStateError(GitVirtualFsError):
    """Raised when an operation is not legal in the repository's current state."""


class MissingSecretError(GitVirtualFsError):
    """Raised when a required secret cannot be found in the secret store."""

    def __init__(self, keys: list[str]):
        self.keys = keys
        super().__init__(f"Missing required secret. Expected one of: {', '.join(keys)}")


class PushRejectedError(GitVirtualFsError):
    """Raised when the remote refuses a push."""


class UserAbort(GitVirtualFsError):
    """Raised when the user cancels an interactive flow."""


class GitCommandError(GitVirtualFsError):
    """Raised when an underlying git command fails."""

    def __init__(
        self,
        command: list[str],
        returncode: int,
        *,
        stdout: str | None = None,
        stderr: str | None = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        message = f"git command failed (exit {returncode}): {' '.join(command)}"
        details = "\n".join(
            section
            for section in (self.stdout.strip(), self.stderr.strip())
            if section
        )
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)


__all__ = [
    "GitVirtualFsError",
    "ConfigError",
    "ValidationError",
    "InvalidStateError",
    "MissingSecretError",
    "PushRejectedError",
    "UserAbort",
    "GitCommandError",
]
