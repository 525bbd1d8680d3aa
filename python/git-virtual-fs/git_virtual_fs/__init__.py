"""Virtual file system over git working folders."""

from importlib import metadata

from .filesystem import VirtualFileSystem
from .repository import OpenRepository, ProtoRepository

try:  # pragma: no cover - best effort metadata lookup
    __version__ = metadata.version("git-virtual-fs")
except metadata.PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__", "VirtualFileSystem", "ProtoRepository", "OpenRepository"]
