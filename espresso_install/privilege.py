"""Elevation check that gates every other part of a run."""

import ctypes
import logging
import os
from typing import Callable

from .errors import PrivilegeError

_logging = logging.getLogger(__name__)


def _posix_is_elevated() -> bool:
    return os.geteuid() == 0


def _windows_is_elevated() -> bool:
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return False


class PrivilegeGate:
    """Checks that the current process holds administrative rights.

    There is no retry: privilege state does not change by waiting.
    """

    def __init__(self, platform: str, is_elevated: Callable[[], bool] | None = None):
        self.platform = platform
        if is_elevated is None:
            is_elevated = _windows_is_elevated if platform == "windows" else _posix_is_elevated
        self._is_elevated = is_elevated

    def check(self) -> bool:
        elevated = self._is_elevated()
        _logging.debug(f"Elevated: {elevated} (platform {self.platform})")
        return elevated

    def require(self) -> None:
        if not self.check():
            if self.platform == "windows":
                hint = "run the installer from an Administrator prompt"
            else:
                hint = "run the installer as root, e.g. with sudo"
            raise PrivilegeError(
                f"Insufficient permissions to install the EspressoLabs Agent; {hint}."
            )
