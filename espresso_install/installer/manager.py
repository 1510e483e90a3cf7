"""Installation state machine.

IDLE -> DETECTING -> [UNINSTALLING] -> INSTALLING -> VERIFYING -> DONE
Any state may move to FAILED. Nothing here is retried: a half-removed or
half-installed product is not safe to act on blindly, and nothing that
already completed is rolled back.
"""

import logging
from pathlib import Path

from espresso_install.errors import (
    InstallError,
    InstallerError,
    UninstallError,
    VerificationError,
)
from espresso_install.versions import version_matches

from .models import (
    InstallationResult,
    InstallationTarget,
    InstalledProduct,
    InstallState,
    ReleaseArtifact,
)
from .platforms import PlatformInstaller

_logging = logging.getLogger(__name__)


class InstallationManager:
    def __init__(
        self,
        platform_installer: PlatformInstaller,
        target: InstallationTarget,
        log_path: Path,
        backend_host: str,
        token: str,
    ):
        self.platform_installer = platform_installer
        self.target = target
        self.log_path = log_path
        self.backend_host = backend_host
        self.token = token
        self.state = InstallState.IDLE
        self.history: list[InstallState] = [InstallState.IDLE]

    def _enter(self, state: InstallState) -> None:
        _logging.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def detect(self) -> InstalledProduct | None:
        self._enter(InstallState.DETECTING)
        product = self.platform_installer.detect(self.target)
        if product is not None:
            self.target.prior_version = product.version
            _logging.info(f"Found prior installation {product.name} ({product.version or 'unknown version'})")
        return product

    def uninstall(self, product: InstalledProduct) -> None:
        self._enter(InstallState.UNINSTALLING)
        output, returncode = self.platform_installer.uninstall(product, self.target, self.log_path)
        if returncode != 0:
            raise UninstallError(
                f"Uninstalling {product.name} failed with exit code {returncode}: {output}"
            )
        if self.platform_installer.detect(self.target) is not None:
            raise UninstallError(
                f"{product.name} is still registered after the uninstall command completed"
            )

    def install(self, package: Path) -> None:
        self._enter(InstallState.INSTALLING)
        _, returncode = self.platform_installer.install(
            package, self.target, self.log_path, self.backend_host, self.token
        )
        if returncode != 0:
            raise InstallError(
                f"Installer exited with code {returncode} for {package.name}",
                log_path=self.log_path,
            )

    def verify(self, expected_version: str) -> str:
        self._enter(InstallState.VERIFYING)
        executable = self.platform_installer.locate_executable(self.target)
        if executable is None:
            raise VerificationError(
                f"{self.target.executable} is not installed or not available in the PATH."
            )
        output, returncode = self.platform_installer.query_version(executable)
        if returncode != 0:
            raise VerificationError(f"{executable} --version failed: {output}")
        if not version_matches(expected_version, output):
            raise VerificationError(
                f"Version mismatch: expected {expected_version}, but got {output}"
            )
        _logging.info(f"Version check passed: {output}")
        return output

    def run(self, artifact: ReleaseArtifact, package: Path) -> InstallationResult:
        """Drive the state machine to DONE or FAILED for ``package``."""
        try:
            product = self.detect()
            if product is not None:
                self.uninstall(product)
            self.install(package)
            self.verify(artifact.version)
        except InstallerError as e:
            self._enter(InstallState.FAILED)
            return InstallationResult(
                status=InstallState.FAILED,
                version=artifact.version,
                log_path=self.log_path,
                prior_version=self.target.prior_version,
                history=list(self.history),
                error=e,
            )

        self._enter(InstallState.DONE)
        return InstallationResult(
            status=InstallState.DONE,
            version=artifact.version,
            log_path=self.log_path,
            prior_version=self.target.prior_version,
            history=list(self.history),
        )


__all__ = ["InstallationManager"]
