"""Installer for the EspressoLabs endpoint agent and its companion components."""

from .config import RunConfig, Sources, load_sources
from .errors import (
    AmbiguousAsset,
    CommandFailed,
    ComponentInstallError,
    ConfigError,
    DownloadFailed,
    ExtensionLayoutError,
    InstallError,
    InstallerError,
    NetworkError,
    NoMatchingAsset,
    PrivilegeError,
    ResolutionError,
    UninstallError,
    VerificationError,
    format_error,
    format_stage_error,
)
from .orchestrator import Orchestrator, RunReport
from .privilege import PrivilegeGate
from .release import ArtifactFetcher, ReleaseResolver
from .retry import Backoff, RetryExecutor, RetryPolicy
from .versions import version_matches

__version__ = "0.1.0"

__all__ = [
    "RunConfig",
    "Sources",
    "load_sources",
    "InstallerError",
    "ConfigError",
    "PrivilegeError",
    "ResolutionError",
    "NoMatchingAsset",
    "AmbiguousAsset",
    "NetworkError",
    "DownloadFailed",
    "UninstallError",
    "InstallError",
    "VerificationError",
    "CommandFailed",
    "ComponentInstallError",
    "ExtensionLayoutError",
    "format_error",
    "format_stage_error",
    "Orchestrator",
    "RunReport",
    "PrivilegeGate",
    "ReleaseResolver",
    "ArtifactFetcher",
    "Backoff",
    "RetryExecutor",
    "RetryPolicy",
    "version_matches",
]
