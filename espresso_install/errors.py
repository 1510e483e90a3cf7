"""Installer exceptions and error formatting utilities.

Every fatal condition of a run is an ``InstallerError`` subclass. The ``stage``
attribute names the part of the run that failed so the CLI can print a message
identifying it; there is no machine-readable error code beyond that.

Error Style Guide:
- User-facing errors use 'Error: ' prefix
- The failing stage is shown in brackets: 'Error: [download] ...'
- Use present tense: 'must be', 'is required'
- Include actionable hints where helpful
"""

from pathlib import Path
from typing import Sequence


class InstallerError(Exception):
    """Base exception for fatal installer errors."""

    stage = "install"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigError(InstallerError):
    """Raised when the run configuration or the sources file is invalid."""

    stage = "config"


class PrivilegeError(InstallerError):
    stage = "privileges"


class ResolutionError(InstallerError):
    """No usable release artifact for this platform and architecture."""

    stage = "resolve"


class NoMatchingAsset(ResolutionError):
    pass


class AmbiguousAsset(ResolutionError):
    pass


class NetworkError(InstallerError):
    """A network operation failed. Retried per policy before it is fatal."""

    stage = "network"


class DownloadFailed(NetworkError):
    stage = "download"

    def __init__(self, url: str, attempts: int, reason: str = ""):
        message = f"Failed {attempts} time(s) downloading {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class UninstallError(InstallerError):
    stage = "uninstall"


class InstallError(InstallerError):
    stage = "install"

    def __init__(self, message: str, log_path: Path | None = None):
        if log_path is not None:
            message = f"{message} (see log: {log_path})"
        super().__init__(message)
        self.log_path = log_path


class VerificationError(InstallerError):
    stage = "verify"


class CommandFailed(InstallerError):
    """A subprocess inside a component returned non-zero. Retriable."""

    stage = "component"

    def __init__(self, command: Sequence[str] | str, returncode: int, output: str = ""):
        shown = command if isinstance(command, str) else " ".join(command)
        message = f"Command exited with {returncode}: {shown}"
        if output:
            message = f"{message}\n{output}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class ComponentInstallError(InstallerError):
    stage = "component"

    def __init__(self, component: str, attempts: int, reason: str = ""):
        message = f"Failed {attempts} time(s) installing {component}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.component = component
        self.attempts = attempts


class ExtensionLayoutError(ComponentInstallError):
    """Extracted extension archive does not contain the expected directory."""

    def __init__(self, component: str, expected: str, archive: Path):
        super().__init__(
            component,
            1,
            f"expected directory '{expected}' not found in {archive.name}",
        )
        self.expected = expected


def format_error(message: str) -> str:
    """Format an error message with consistent prefix.

    Examples:
        >>> format_error("file not found")
        'Error: file not found'
    """
    return f"Error: {message}"


def format_stage_error(error: InstallerError) -> str:
    """Format an installer error with the stage that produced it.

    Examples:
        >>> format_stage_error(UninstallError("still registered"))
        'Error: [uninstall] still registered'
    """
    return format_error(f"[{error.stage}] {error}")


__all__ = [
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
]
