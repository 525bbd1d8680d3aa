"""Repository keys, secret stores and credential resolution."""

from __future__ import annotations

import os
import re
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence
from urllib.parse import urlsplit, urlunsplit

from .exceptions import MissingSecretError, ValidationError
from .models import CredentialKind, Credentials
from .monitor import Monitor

CredentialsProvider = Callable[[str, Optional[str], CredentialKind], Optional[Credentials]]

_BAD_KEY_CHARS = re.compile(r"[^A-Za-z_0-9]")


class SecretStore(Protocol):
    def try_get_secret(self, monitor: Monitor, keys: Sequence[str], required: bool) -> str | None:
        """Return the first available secret among ``keys`` (strongest first)."""


class EnvironmentSecretStore:
    """Secret store backed by environment variables."""

    def __init__(self, environ: dict[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    def try_get_secret(self, monitor: Monitor, keys: Sequence[str], required: bool) -> str | None:
        for key in keys:
            value = self._environ.get(key)
            if value:
                return value
        message = f"Secret not found. Define one of the environment variables: {', '.join(keys)}."
        if required:
            monitor.error(message)
        else:
            monitor.trace(message)
        return None


class KnownGitProvider(str, Enum):
    UNKNOWN = "unknown"
    GITHUB = "github"
    GITLAB = "gitlab"
    AZURE_DEVOPS = "azure"
    BITBUCKET = "bitbucket"
    FILE_SYSTEM = "file"


_PROVIDER_HOSTS = {
    "github.com": KnownGitProvider.GITHUB,
    "gitlab.com": KnownGitProvider.GITLAB,
    "dev.azure.com": KnownGitProvider.AZURE_DEVOPS,
    "bitbucket.org": KnownGitProvider.BITBUCKET,
}


def normalize_repository_url(url: str) -> str:
    """Check that ``url`` is absolute without query and strip any ``.git`` suffix."""

    if not url or not url.strip():
        raise ValidationError("Repository url cannot be empty.")
    parts = urlsplit(url.strip())
    if not parts.scheme or (not parts.netloc and parts.scheme != "file") or parts.query:
        raise ValidationError(f"Invalid Url: '{url}' must be absolute and have no query part.")
    path = parts.path
    while path.lower().endswith(".git"):
        path = path[: -len(".git")]
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class RepositoryKey:
    """Origin url of a repository and the secrets needed to reach it.

    The credentials provider is built once and handed to every network call
    (clone, fetch, pull, push) of the repository.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        url: str,
        is_public: bool,
        *,
        monitor: Monitor | None = None,
        username: str = "CKli",
    ):
        self.origin_url = normalize_repository_url(url)
        self.is_public = is_public
        self._secret_store = secret_store
        self._monitor = monitor or Monitor()
        self._username = username
        self._read_credentials: Credentials | None = None
        self._write_credentials: Credentials | None = None
        parts = urlsplit(self.origin_url)
        if parts.scheme == "file":
            self.provider = KnownGitProvider.FILE_SYSTEM
        else:
            self.provider = _PROVIDER_HOSTS.get((parts.hostname or "").lower(), KnownGitProvider.UNKNOWN)
        self.prefix_pat = self._compute_prefix(parts.hostname or "", parts.path)
        self.read_pat_key_name = f"{self.prefix_pat}_READ_PAT" if self.prefix_pat else None
        self.write_pat_key_name = f"{self.prefix_pat}_WRITE_PAT" if self.prefix_pat else None
        self.credentials_provider: CredentialsProvider = self._provide

    def _compute_prefix(self, host: str, path: str) -> str | None:
        if self.provider is KnownGitProvider.FILE_SYSTEM:
            return None
        if self.provider is KnownGitProvider.AZURE_DEVOPS:
            organization = path.strip("/").split("/", 1)[0]
            return "AZURE_GIT_" + organization.upper().replace("-", "_").replace(" ", "_")
        if self.provider is KnownGitProvider.UNKNOWN:
            key = _BAD_KEY_CHARS.sub("_", host).upper()
            if not key.endswith("_GIT"):
                key += "_GIT"
            return key
        return f"{self.provider.name}_GIT"

    @property
    def needs_credentials(self) -> bool:
        return self.prefix_pat is not None

    def is_equivalent(self, url: str) -> bool:
        try:
            other = normalize_repository_url(url)
        except ValidationError:
            return False
        return other.lower() == self.origin_url.lower()

    def get_read_credentials(self, monitor: Monitor) -> Credentials | None:
        if self.is_public or not self.needs_credentials:
            return None
        if self._read_credentials is None:
            keys = [self.write_pat_key_name, self.read_pat_key_name]
            pat = self._secret_store.try_get_secret(monitor, keys, required=True)
            if pat is None:
                raise MissingSecretError(keys)
            self._read_credentials = Credentials(self._username, pat)
        return self._read_credentials

    def get_write_credentials(self, monitor: Monitor) -> Credentials | None:
        if not self.needs_credentials:
            return None
        if self._write_credentials is None:
            keys = [self.write_pat_key_name]
            pat = self._secret_store.try_get_secret(monitor, keys, required=True)
            if pat is None:
                raise MissingSecretError(keys)
            self._write_credentials = Credentials(self._username, pat)
        return self._write_credentials

    def _provide(self, url: str, user: str | None, kind: CredentialKind) -> Credentials | None:
        if kind is CredentialKind.WRITE:
            return self.get_write_credentials(self._monitor)
        return self.get_read_credentials(self._monitor)

    def __str__(self) -> str:
        return self.origin_url


__all__ = [
    "CredentialsProvider",
    "SecretStore",
    "EnvironmentSecretStore",
    "KnownGitProvider",
    "normalize_repository_url",
    "RepositoryKey",
]
