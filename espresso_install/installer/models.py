"""Data models for the installation engine."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from espresso_install.config import ProductSource


@dataclass(frozen=True)
class ReleaseArtifact:
    version: str
    platform: str
    arch: str
    download_url: str
    file_name: str


@dataclass
class InstallationTarget:
    name_pattern: str
    candidate_paths: list[Path]
    executable: str
    uninstall_script: Path | None = None
    reconfigure_script: Path | None = None
    prior_version: str | None = None

    @classmethod
    def from_source(cls, source: ProductSource) -> "InstallationTarget":
        return cls(
            name_pattern=source.name_pattern,
            candidate_paths=list(source.candidate_paths),
            executable=source.executable,
            uninstall_script=source.uninstall_script,
            reconfigure_script=source.reconfigure_script,
        )


@dataclass(frozen=True)
class InstalledProduct:
    """A prior installation found in the package registry."""

    name: str
    version: str | None
    identifier: str


class InstallState(Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    UNINSTALLING = "uninstalling"
    INSTALLING = "installing"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class InstallationResult:
    status: InstallState
    version: str
    log_path: Path
    prior_version: str | None = None
    history: list[InstallState] = field(default_factory=list)
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == InstallState.DONE


__all__ = [
    "ReleaseArtifact",
    "InstallationTarget",
    "InstalledProduct",
    "InstallState",
    "InstallationResult",
]
