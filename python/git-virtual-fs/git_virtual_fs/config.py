"""Load branch names and the bot identity from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .exceptions import ConfigError


@dataclass(frozen=True)
class WorldBranches:
    """Names of the three branches of the promotion workflow."""

    local: str = "local"
    develop: str = "develop"
    master: str = "master"


@dataclass(frozen=True)
class BotIdentity:
    """Committer used for automated commits.

    Commits authored by this identity are excluded from diff messages.
    """

    name: str = "CKli"
    email: str = "none"


@dataclass(frozen=True)
class Settings:
    branches: WorldBranches = field(default_factory=WorldBranches)
    bot: BotIdentity = field(default_factory=BotIdentity)
    origin: str = "origin"


def load_settings() -> Settings:
    branches = WorldBranches(
        local=_optional_env("GVFS_LOCAL_BRANCH", WorldBranches.local),
        develop=_optional_env("GVFS_DEVELOP_BRANCH", WorldBranches.develop),
        master=_optional_env("GVFS_MASTER_BRANCH", WorldBranches.master),
    )
    if len({branches.local, branches.develop, branches.master}) != 3:
        raise ConfigError(
            "GVFS_LOCAL_BRANCH, GVFS_DEVELOP_BRANCH and GVFS_MASTER_BRANCH must name distinct branches."
        )
    bot = BotIdentity(
        name=_optional_env("GVFS_BOT_NAME", BotIdentity.name),
        email=_optional_env("GVFS_BOT_EMAIL", BotIdentity.email),
    )
    return Settings(branches=branches, bot=bot)


def _optional_env(var: str, default: str) -> str:
    raw = os.environ.get(var)
    if raw is None:
        return default
    value = raw.strip()
    if not value:
        raise ConfigError(f"Environment variable {var} is set but empty. Unset it to use '{default}'.")
    return value


__all__ = ["WorldBranches", "BotIdentity", "Settings", "load_settings"]
