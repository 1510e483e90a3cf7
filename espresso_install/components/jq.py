"""Auxiliary jq JSON tool component."""

import logging
import shutil
from pathlib import Path

from espresso_install.config import JqSource
from espresso_install.errors import ConfigError
from espresso_install.installer.platforms import PlatformInstaller
from espresso_install.release import ArtifactFetcher
from espresso_install.retry import COMPONENT_POLICY, RetryPolicy

from .base import ComponentInstaller

_logging = logging.getLogger(__name__)


class JsonToolInstaller(ComponentInstaller):
    name = "jq"

    def __init__(
        self,
        source: JqSource,
        platform: str,
        arch: str,
        platform_installer: PlatformInstaller,
        fetcher: ArtifactFetcher,
        staging_dir: Path,
        retry_policy: RetryPolicy = COMPONENT_POLICY,
    ):
        super().__init__(retry_policy)
        url = source.urls.get(platform, {}).get(arch)
        if not url:
            raise ConfigError(f"jq.urls.{platform}.{arch} is required")
        if platform not in source.destination:
            raise ConfigError(f"jq.destination.{platform} is required")
        self.url = url
        self.destination = source.destination[platform]
        self.platform_installer = platform_installer
        self.fetcher = fetcher
        self.staging_dir = staging_dir

    def is_installed(self) -> bool:
        return self.destination.is_file()

    def install(self) -> None:
        downloaded = self.fetcher.download(self.url, self.staging_dir / self.destination.name)
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(downloaded), str(self.destination))
        self.platform_installer.make_executable(self.destination)
        _logging.info(f"Installed jq to {self.destination}")
