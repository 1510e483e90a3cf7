"""Native installer mechanics for each supported operating system.

The orchestrator picks one ``PlatformInstaller`` from the detected platform at
startup; the rest of the flow never branches on the operating system.
"""

import logging
import os
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Sequence, Tuple

from espresso_install.errors import ConfigError
from espresso_install.execution import VERSION_TIMEOUT, run_command

from .models import InstallationTarget, InstalledProduct

CommandRunner = Callable[..., Tuple[str, int]]

_logging = logging.getLogger(__name__)


class PlatformInstaller(ABC):
    """Abstract base class for the native package mechanics of one OS."""

    platform: str = ""
    # True when the native installer writes the install log itself.
    writes_own_log = False

    def __init__(self, run: CommandRunner = run_command):
        self.run = run

    @abstractmethod
    def detect(self, target: InstallationTarget) -> InstalledProduct | None:
        """Find a prior installation of ``target`` in the package registry."""

    @abstractmethod
    def uninstall(
        self, product: InstalledProduct, target: InstallationTarget, log_path: Path
    ) -> Tuple[str, int]:
        """Remove ``product`` quietly. Returns (output, return code)."""

    @abstractmethod
    def install(
        self,
        package: Path,
        target: InstallationTarget,
        log_path: Path,
        backend_host: str,
        token: str,
    ) -> Tuple[str, int]:
        """Install ``package`` unattended, configured for the backend."""

    @abstractmethod
    def package_command(self, package: Path, log_path: Path | None = None) -> Sequence[str] | str:
        """Native command that installs a companion package with no extra properties."""

    def install_package(self, package: Path, log_path: Path | None = None) -> Tuple[str, int]:
        return self.run(self.package_command(package, log_path), log_path=log_path)

    @abstractmethod
    def is_registered(self, identifiers: Sequence[str]) -> bool:
        """Check whether any of ``identifiers`` is in the package registry."""

    @abstractmethod
    def clear_quarantine(self, path: Path) -> None:
        """Remove the OS download mark so ``path`` can be executed."""

    def make_executable(self, path: Path) -> None:
        pass

    def locate_executable(self, target: InstallationTarget) -> Path | None:
        """Return the first existing candidate path, then fall back to PATH."""
        for candidate in target.candidate_paths:
            if candidate.is_file():
                return candidate
        found = shutil.which(target.executable)
        return Path(found) if found else None

    def query_version(self, executable: Path) -> Tuple[str, int]:
        return self.run([str(executable), "--version"], timeout=VERSION_TIMEOUT)

    def _first_existing_path(self, target: InstallationTarget) -> InstalledProduct | None:
        for candidate in target.candidate_paths:
            if candidate.exists():
                return InstalledProduct(name=candidate.name, version=None, identifier=str(candidate))
        return None


class MacInstaller(PlatformInstaller):
    """PKG installs through installer(8); detection through pkgutil receipts."""

    platform = "darwin"

    def _receipts(self) -> list[str] | None:
        output, returncode = self.run(["pkgutil", "--pkgs"])
        if returncode != 0:
            return None
        return [line.strip() for line in output.splitlines() if line.strip()]

    def _receipt_version(self, package_id: str) -> str | None:
        output, returncode = self.run(["pkgutil", "--pkg-info", package_id])
        if returncode != 0:
            return None
        for line in output.splitlines():
            key, _, value = line.partition(":")
            if key.strip() == "version":
                return value.strip() or None
        return None

    def detect(self, target: InstallationTarget) -> InstalledProduct | None:
        receipts = self._receipts()
        if receipts is None:
            _logging.warning("pkgutil unavailable; falling back to install paths")
            return self._first_existing_path(target)
        pattern = re.compile(target.name_pattern)
        for package_id in receipts:
            if pattern.search(package_id):
                return InstalledProduct(
                    name=package_id,
                    version=self._receipt_version(package_id),
                    identifier=package_id,
                )
        return None

    def uninstall(
        self, product: InstalledProduct, target: InstallationTarget, log_path: Path
    ) -> Tuple[str, int]:
        outputs = []
        script = target.uninstall_script
        if script is not None and script.is_file():
            output, returncode = self.run([str(script)], log_path=log_path)
            outputs.append(output)
            if returncode != 0:
                return "\n".join(outputs), returncode
        output, returncode = self.run(
            ["pkgutil", "--forget", product.identifier], log_path=log_path
        )
        outputs.append(output)
        return "\n".join(o for o in outputs if o), returncode

    def install(
        self,
        package: Path,
        target: InstallationTarget,
        log_path: Path,
        backend_host: str,
        token: str,
    ) -> Tuple[str, int]:
        output, returncode = self.install_package(package, log_path)
        if returncode != 0:
            return output, returncode
        if target.reconfigure_script is None:
            return output, returncode
        # argv list, so host and token reach the script verbatim
        return self.run(
            [str(target.reconfigure_script), backend_host, token],
            log_path=log_path,
            secrets=(token,),
        )

    def package_command(self, package: Path, log_path: Path | None = None) -> list[str]:
        return ["installer", "-pkg", str(package), "-target", "/", "-verboseR"]

    def is_registered(self, identifiers: Sequence[str]) -> bool:
        receipts = self._receipts() or []
        for identifier in identifiers:
            if identifier in receipts:
                _logging.info(f"Package receipt found: {identifier}")
                return True
        return False

    def clear_quarantine(self, path: Path) -> None:
        _, returncode = self.run(["xattr", "-d", "com.apple.quarantine", str(path)])
        if returncode != 0:
            _logging.debug(f"No quarantine attribute on {path}")

    def make_executable(self, path: Path) -> None:
        path.chmod(0o755)


# msiexec reports 3010 for "success, reboot required".
MSI_SUCCESS_CODES = (0, 3010)

UNINSTALL_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)


def msi_property(name: str, value: str) -> str:
    """Quote an msiexec public property; embedded quotes are doubled."""
    return f'{name}="{value.replace(chr(34), chr(34) * 2)}"'


def msiexec_command_line(args: Sequence[str], properties: dict[str, str] | None = None) -> str:
    """Build an msiexec command line.

    msiexec parses PROPERTY="value" itself, so the properties are appended
    verbatim instead of going through list2cmdline backslash escaping.
    """
    line = subprocess.list2cmdline(["msiexec", *args])
    for name, value in (properties or {}).items():
        line += " " + msi_property(name, value)
    return line


class WindowsInstaller(PlatformInstaller):
    """MSI installs through msiexec; detection through the Uninstall registry."""

    platform = "windows"
    writes_own_log = True

    def _uninstall_entries(self) -> list[dict[str, str]]:
        import winreg

        entries = []
        for key_path in UNINSTALL_KEYS:
            try:
                root = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path)
            except OSError:
                continue
            with root:
                index = 0
                while True:
                    try:
                        sub_name = winreg.EnumKey(root, index)
                    except OSError:
                        break
                    index += 1
                    try:
                        with winreg.OpenKey(root, sub_name) as sub:
                            entry = {"key": sub_name}
                            for value_name in ("DisplayName", "DisplayVersion"):
                                try:
                                    entry[value_name] = str(winreg.QueryValueEx(sub, value_name)[0])
                                except OSError:
                                    pass
                    except OSError:
                        continue
                    if "DisplayName" in entry:
                        entries.append(entry)
        return entries

    def detect(self, target: InstallationTarget) -> InstalledProduct | None:
        try:
            entries = self._uninstall_entries()
        except OSError as e:
            _logging.warning(f"Registry unavailable ({e}); falling back to install paths")
            return self._first_existing_path(target)
        pattern = re.compile(target.name_pattern)
        for entry in entries:
            if pattern.search(entry["DisplayName"]):
                return InstalledProduct(
                    name=entry["DisplayName"],
                    version=entry.get("DisplayVersion"),
                    identifier=entry["key"],
                )
        return None

    def _msiexec(self, command: str, log_path: Path | None, secrets: Sequence[str] = ()) -> Tuple[str, int]:
        output, returncode = self.run(command, log_path=log_path, secrets=secrets)
        if returncode in MSI_SUCCESS_CODES:
            returncode = 0
        return output, returncode

    def uninstall(
        self, product: InstalledProduct, target: InstallationTarget, log_path: Path
    ) -> Tuple[str, int]:
        command = msiexec_command_line(
            ["/x", product.identifier, "/qn", "/norestart", "/L*v+", str(log_path)]
        )
        return self._msiexec(command, None)

    def install(
        self,
        package: Path,
        target: InstallationTarget,
        log_path: Path,
        backend_host: str,
        token: str,
    ) -> Tuple[str, int]:
        command = msiexec_command_line(
            ["/i", str(package), "/qn", "/norestart", "/L*v+", str(log_path)],
            {"BACKEND_HOST": backend_host, "TOKEN": token},
        )
        return self._msiexec(command, None, secrets=(token,))

    def package_command(self, package: Path, log_path: Path | None = None) -> str:
        args = ["/i", str(package), "/qn", "/norestart"]
        if log_path is not None:
            args += ["/L*v+", str(log_path)]
        return msiexec_command_line(args)

    def install_package(self, package: Path, log_path: Path | None = None) -> Tuple[str, int]:
        return self._msiexec(self.package_command(package, log_path), None)

    def is_registered(self, identifiers: Sequence[str]) -> bool:
        try:
            names = [e["DisplayName"] for e in self._uninstall_entries()]
        except OSError:
            return False
        return any(identifier in name for identifier in identifiers for name in names)

    def clear_quarantine(self, path: Path) -> None:
        try:
            os.remove(f"{path}:Zone.Identifier")
        except OSError:
            _logging.debug(f"No Zone.Identifier stream on {path}")


_INSTALLERS: dict[str, type[PlatformInstaller]] = {
    MacInstaller.platform: MacInstaller,
    WindowsInstaller.platform: WindowsInstaller,
}


def select_platform_installer(platform: str, run: CommandRunner = run_command) -> PlatformInstaller:
    installer_cls = _INSTALLERS.get(platform)
    if installer_cls is None:
        raise ConfigError(
            f"The EspressoLabs Agent is only supported on macOS and Windows (detected '{platform}')."
        )
    return installer_cls(run)


__all__ = [
    "PlatformInstaller",
    "MacInstaller",
    "WindowsInstaller",
    "msi_property",
    "msiexec_command_line",
    "select_platform_installer",
]
