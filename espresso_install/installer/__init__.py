"""Installation engine for the EspressoLabs agent."""

from .manager import InstallationManager
from .models import (
    InstallationResult,
    InstallationTarget,
    InstalledProduct,
    InstallState,
    ReleaseArtifact,
)
from .platforms import (
    MacInstaller,
    PlatformInstaller,
    WindowsInstaller,
    select_platform_installer,
)

__all__ = [
    "InstallationManager",
    "InstallationResult",
    "InstallationTarget",
    "InstalledProduct",
    "InstallState",
    "ReleaseArtifact",
    "PlatformInstaller",
    "MacInstaller",
    "WindowsInstaller",
    "select_platform_installer",
]
