"""Optional components installed after the agent."""

from .antivirus import AntivirusEngineInstaller
from .base import (
    INSTALLED,
    SKIPPED,
    ComponentInstaller,
    ComponentOutcome,
    ComponentSpec,
    install_component,
)
from .extension import BrowserExtensionInstaller
from .jq import JsonToolInstaller

__all__ = [
    "INSTALLED",
    "SKIPPED",
    "ComponentInstaller",
    "ComponentOutcome",
    "ComponentSpec",
    "install_component",
    "AntivirusEngineInstaller",
    "BrowserExtensionInstaller",
    "JsonToolInstaller",
]
