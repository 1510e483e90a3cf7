"""Antivirus engine component."""

import logging
import shutil
import xml.etree.ElementTree as ET
from pathlib import Path

from espresso_install.config import AntivirusSource
from espresso_install.errors import CommandFailed, ConfigError
from espresso_install.installer.platforms import PlatformInstaller
from espresso_install.release import ArtifactFetcher
from espresso_install.retry import COMPONENT_POLICY, RetryPolicy

from .base import ComponentInstaller

CONFIG_FILE_NAME = "installer.xml"

_logging = logging.getLogger(__name__)


def render_feature_config(features: list[str]) -> str:
    """Render the vendor installer.xml enabling ``features``."""
    root = ET.Element("config", version="1.0")
    element = ET.SubElement(root, "features")
    for feature in features:
        ET.SubElement(element, "feature", name=feature, action="1")
    ET.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="utf-8"?>\n{body}\n'


class AntivirusEngineInstaller(ComponentInstaller):
    name = "antivirus engine"

    def __init__(
        self,
        source: AntivirusSource,
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
            raise ConfigError(f"antivirus.urls.{platform}.{arch} is required")
        self.url = url
        self.source = source
        self.platform = platform
        self.platform_installer = platform_installer
        self.fetcher = fetcher
        self.staging_dir = staging_dir

    def is_installed(self) -> bool:
        for path in self.source.product_paths.get(self.platform, []):
            if path.is_dir():
                _logging.info(f"Antivirus directory found: {path}")
                return True
        if self.source.receipts and self.platform_installer.is_registered(self.source.receipts):
            return True
        _logging.info("Antivirus not detected by package receipts or directories.")
        return False

    def install(self) -> None:
        work_dir = self.staging_dir / "antivirus"
        if work_dir.exists():
            shutil.rmtree(work_dir)
        work_dir.mkdir(parents=True)

        package = self.fetcher.download(self.url, work_dir / self.url.rsplit("/", 1)[-1])
        # The vendor installer reads its feature selection from next to the package.
        (work_dir / CONFIG_FILE_NAME).write_text(
            render_feature_config(self.source.features), encoding="utf-8"
        )

        output, returncode = self.platform_installer.install_package(package)
        if returncode != 0:
            raise CommandFailed(self.platform_installer.package_command(package), returncode, output)
