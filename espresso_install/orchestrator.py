"""One installer run, wired from its parts.

PrivilegeGate -> ReleaseResolver -> ArtifactFetcher -> InstallationManager
-> components. Each step only starts once the previous one finished, and the
first fatal error ends the run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

import requests

from .components import (
    AntivirusEngineInstaller,
    BrowserExtensionInstaller,
    ComponentInstaller,
    ComponentOutcome,
    JsonToolInstaller,
    install_component,
)
from .config import RunConfig, Sources
from .errors import ConfigError, DownloadFailed, InstallError
from .installer import (
    InstallationManager,
    InstallationResult,
    InstallationTarget,
    PlatformInstaller,
    ReleaseArtifact,
    select_platform_installer,
)
from .paths import create_staging_dir, get_install_log_path, remove_staging_dir
from .privilege import PrivilegeGate
from .release import ArtifactFetcher, ReleaseResolver
from .retry import RetryExecutor, RetryPolicy

# Component downloads are retried by the component policy, not a second time here.
SINGLE_ATTEMPT = RetryPolicy(max_attempts=1, base_delay=0)

_logging = logging.getLogger(__name__)


@dataclass
class RunReport:
    artifact: ReleaseArtifact
    result: InstallationResult
    components: list[ComponentOutcome] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class Orchestrator:
    def __init__(
        self,
        config: RunConfig,
        sources: Sources,
        gate: PrivilegeGate | None = None,
        executor: RetryExecutor | None = None,
        session: requests.Session | None = None,
        platform_installer: PlatformInstaller | None = None,
        log_path: Path | None = None,
        staging_dir: Path | None = None,
        progress: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.sources = sources
        self.gate = gate or PrivilegeGate(config.platform)
        self.executor = executor or RetryExecutor()
        self.session = session or requests.Session()
        self._platform_installer = platform_installer
        self.log_path = log_path or get_install_log_path()
        self._staging_dir = staging_dir
        self.progress = progress or (lambda message: _logging.info(message))

    def build_components(
        self, platform_installer: PlatformInstaller, staging_dir: Path
    ) -> list[ComponentInstaller]:
        """Configured components in install order: jq, extension, antivirus."""
        config = self.config
        fetcher = ArtifactFetcher(
            self.executor,
            SINGLE_ATTEMPT,
            self.session,
            clear_quarantine=platform_installer.clear_quarantine,
        )
        policy = self.sources.component_policy
        components: list[ComponentInstaller] = []
        if config.install_jq:
            components.append(
                JsonToolInstaller(
                    self.sources.jq, config.platform, config.arch,
                    platform_installer, fetcher, staging_dir, policy,
                )
            )
        if config.install_extension:
            components.append(
                BrowserExtensionInstaller(
                    self.sources.extension, config.platform, fetcher, staging_dir, policy,
                )
            )
        if config.install_antivirus:
            components.append(
                AntivirusEngineInstaller(
                    self.sources.antivirus, config.platform, config.arch,
                    platform_installer, fetcher, staging_dir, policy,
                )
            )
        return components

    def _start_log(self, artifact: ReleaseArtifact, platform_installer: PlatformInstaller) -> None:
        """Start a fresh install log for this run.

        When the native installer writes the log itself (msiexec /L*v+) the
        file is only cleared, so it holds a single encoding.
        """
        try:
            if platform_installer.writes_own_log:
                self.log_path.unlink(missing_ok=True)
                return
            with open(self.log_path, "w", encoding="utf-8") as log:
                log.write(
                    f"espresso-install {datetime.now().isoformat(timespec='seconds')} "
                    f"{artifact.file_name} ({self.config.platform}/{self.config.arch})\n"
                )
        except OSError as e:
            raise InstallError(f"Cannot write the install log {self.log_path}: {e}") from e

    @staticmethod
    def _create_staging_dir() -> Path:
        try:
            return create_staging_dir()
        except OSError as e:
            raise InstallError(f"Cannot create a staging directory: {e}") from e

    def run(self) -> RunReport:
        """Run every stage, raising the first fatal ``InstallerError``."""
        config = self.config
        self.gate.require()

        self.progress("Resolving the latest release...")
        resolver = ReleaseResolver(
            self.sources.asset_suffixes,
            self.executor,
            self.sources.download_policy,
            self.session,
        )
        artifact = resolver.resolve(self.sources.release_index, config.platform, config.arch)

        platform_installer = self._platform_installer or select_platform_installer(config.platform)
        product = self.sources.product.get(config.platform)
        if product is None:
            raise ConfigError(f"product.{config.platform} is missing from the sources file")
        target = InstallationTarget.from_source(product)

        staging_dir = self._staging_dir or self._create_staging_dir()
        try:
            self.progress(f"Downloading {artifact.file_name}...")
            fetcher = ArtifactFetcher(
                self.executor,
                self.sources.download_policy,
                self.session,
                clear_quarantine=platform_installer.clear_quarantine,
            )
            try:
                package = fetcher.fetch(artifact, staging_dir)
            except OSError as e:
                raise DownloadFailed(artifact.download_url, 1, str(e)) from e

            self._start_log(artifact, platform_installer)
            self.progress(f"Installing espresso-agent {artifact.version}...")
            manager = InstallationManager(
                platform_installer, target, self.log_path, config.backend_host, config.token
            )
            result = manager.run(artifact, package)
            if result.error is not None:
                raise result.error

            report = RunReport(artifact=artifact, result=result)
            for component in self.build_components(platform_installer, staging_dir):
                self.progress(f"Checking {component.name}...")
                outcome = install_component(component.to_spec(), self.executor)
                report.components.append(outcome)
                if not outcome.skipped:
                    report.notes.extend(component.notes())
            return report
        finally:
            if self._staging_dir is None and not config.keep_staging:
                remove_staging_dir(staging_dir)


__all__ = ["Orchestrator", "RunReport"]
