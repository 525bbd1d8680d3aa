"""A file system rooted in a folder that contains declared repositories."""

from __future__ import annotations

import shutil
from pathlib import Path

from .commands import CommandRegistry
from .config import Settings, load_settings
from .credentials import EnvironmentSecretStore, RepositoryKey, SecretStore
from .exceptions import ValidationError
from .monitor import Monitor
from .repository import OpenRepository, PluginManagerFactory, ProtoRepository, validate_folder_path
from .tree import PhysicalEntry, VirtualNode, list_children, split_path


class VirtualFileSystem:
    """Routes paths either to the virtual tree of an opened repository or to disk.

    A path whose leading segments match the display path of an opened repository
    is resolved by that repository's :class:`~git_virtual_fs.tree.VirtualTree`.
    Any other path is a plain file or folder below :attr:`root`. The longest
    matching display path wins. There is at most one :class:`OpenRepository` per
    folder path.
    """

    def __init__(
        self,
        root: Path,
        *,
        secret_store: SecretStore | None = None,
        settings: Settings | None = None,
        monitor: Monitor | None = None,
        plugin_manager_factory: PluginManagerFactory | None = None,
        commands: CommandRegistry | None = None,
    ):
        self.root = Path(root).resolve()
        self.secret_store = secret_store or EnvironmentSecretStore()
        self.settings = settings or load_settings()
        self.monitor = monitor or Monitor()
        self.plugin_manager_factory = plugin_manager_factory
        self.commands = commands
        self._protos: dict[str, ProtoRepository] = {}

    @property
    def declared(self) -> list[ProtoRepository]:
        return list(self._protos.values())

    @property
    def repositories(self) -> list[OpenRepository]:
        return [proto.repository for proto in self._protos.values() if proto.repository is not None]

    def declare(self, folder_path: str, url: str, is_public: bool, world: str | None = None) -> ProtoRepository:
        """Declare the repository cloned in ``folder_path``. Declaring the same folder twice returns the same instance."""

        normalized = validate_folder_path(folder_path)
        existing = self._protos.get(normalized)
        if existing is not None:
            if not existing.key.is_equivalent(url):
                raise ValidationError(
                    f"Folder '{normalized}' is already declared for '{existing.key.origin_url}', not '{url}'."
                )
            return existing
        key = RepositoryKey(
            self.secret_store,
            url,
            is_public,
            monitor=self.monitor,
            username=self.settings.bot.name,
        )
        proto = ProtoRepository(self, key, normalized, world)
        self._protos[normalized] = proto
        return proto

    def load_all(self, branch_name: str | None = None) -> tuple[list[OpenRepository], bool]:
        """Load every declared repository. Returns the opened ones and whether any failed."""

        opened: list[OpenRepository] = []
        has_errors = False
        for proto in self._protos.values():
            repository = proto.load(branch_name)
            if repository is None:
                has_errors = True
            else:
                opened.append(repository)
        return opened, has_errors

    def find_repository(self, path: str) -> tuple[OpenRepository | None, str]:
        """Return the opened repository that contains ``path`` and the path relative to it."""

        parts = split_path(path)
        best: OpenRepository | None = None
        best_len = 0
        for repository in self.repositories:
            prefix = repository.display_path.split("/")
            if len(prefix) > best_len and parts[: len(prefix)] == prefix:
                best, best_len = repository, len(prefix)
        return best, "/".join(parts[best_len:])

    def get_file_info(self, path: str) -> VirtualNode:
        repository, sub_path = self.find_repository(path)
        if repository is not None:
            return repository.tree.get_file_info(sub_path)
        parts = split_path(path)
        return PhysicalEntry(parts[-1] if parts else self.root.name, self.root.joinpath(*parts))

    def get_directory_contents(self, path: str) -> list[VirtualNode]:
        repository, sub_path = self.find_repository(path)
        if repository is not None:
            return repository.tree.get_directory_contents(sub_path)
        node = self.get_file_info(path)
        return list_children(None, node)

    def copy_to(self, source: Path, dest_path: str) -> bool:
        target = self._writable_destination(dest_path)
        if target is None:
            return False
        try:
            shutil.copyfile(source, target)
            return True
        except OSError as exc:
            self.monitor.fatal(f"Unable to copy '{source}' to '{dest_path}'.", exc)
            return False

    def write_text(self, content: str, dest_path: str, encoding: str = "utf-8") -> bool:
        target = self._writable_destination(dest_path)
        if target is None:
            return False
        try:
            target.write_text(content, encoding=encoding)
            return True
        except OSError as exc:
            self.monitor.fatal(f"Unable to write '{dest_path}'.", exc)
            return False

    def ensure_directory(self, path: str) -> bool:
        node = self.get_file_info(path)
        if node.physical_path is None:
            self.monitor.error(f"Cannot create directory '{path}': this path is not writable.")
            return False
        try:
            node.physical_path.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as exc:
            self.monitor.fatal(f"Unable to create directory '{path}'.", exc)
            return False

    def delete(self, path: str) -> bool:
        """Delete a file or a folder. Deleting a missing path succeeds."""

        node = self.get_file_info(path)
        if node.physical_path is None:
            self.monitor.error(f"Cannot delete '{path}': this path is not writable.")
            return False
        target = node.physical_path
        try:
            if not target.exists():
                self.monitor.debug(f"'{path}' does not exist.")
                return True
            if target.is_dir():
                self.monitor.info(f"Deleting folder '{path}'.")
                shutil.rmtree(target)
            else:
                self.monitor.info(f"Deleting file '{path}'.")
                target.unlink()
            return True
        except OSError as exc:
            self.monitor.fatal(f"Unable to delete '{path}'.", exc)
            return False

    def _writable_destination(self, dest_path: str) -> Path | None:
        node = self.get_file_info(dest_path)
        if node.physical_path is None:
            self.monitor.error(f"Cannot write '{dest_path}': this path is not writable.")
            return None
        if node.is_directory:
            self.monitor.error(f"Cannot write '{dest_path}': it is an existing directory.")
            return None
        try:
            node.physical_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.monitor.fatal(f"Unable to create the folder of '{dest_path}'.", exc)
            return None
        return node.physical_path

    def dispose(self) -> None:
        for repository in self.repositories:
            repository.dispose()

    def __repr__(self) -> str:
        return f"VirtualFileSystem({str(self.root)!r}, {len(self._protos)} repositories)"


__all__ = ["VirtualFileSystem"]
