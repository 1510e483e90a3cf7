"""Browser extension component."""

import json
import logging
import re
import shutil
import zipfile
from pathlib import Path

from espresso_install.config import ExtensionSource
from espresso_install.errors import (
    ComponentInstallError,
    ConfigError,
    ExtensionLayoutError,
    NetworkError,
)
from espresso_install.release import ArtifactFetcher
from espresso_install.retry import COMPONENT_POLICY, RetryPolicy

from .base import ComponentInstaller

_VERSION_IN_URL = re.compile(r"-(\d+\.\d+\.\d+)\.zip$")

_logging = logging.getLogger(__name__)


class BrowserExtensionInstaller(ComponentInstaller):
    """Unpacked Chrome extension copied into a shared system directory.

    The remote pointer file holds the download URL of the current package. The
    archive must contain a directory named ``source.subdirectory``; its
    contents replace whatever is in the destination.
    """

    name = "browser extension"

    def __init__(
        self,
        source: ExtensionSource,
        platform: str,
        fetcher: ArtifactFetcher,
        staging_dir: Path,
        retry_policy: RetryPolicy = COMPONENT_POLICY,
    ):
        super().__init__(retry_policy)
        if platform not in source.destination:
            raise ConfigError(f"extension.destination.{platform} is required")
        self.source = source
        self.platform = platform
        self.fetcher = fetcher
        self.staging_dir = staging_dir
        self.destination = source.destination[platform]
        self._package_url: str | None = None

    @property
    def package_url(self) -> str:
        if self._package_url is None:
            text = self.fetcher.fetch_text(self.source.pointer_url)
            lines = [line.strip() for line in text.splitlines() if line.strip()]
            if not lines:
                raise ComponentInstallError(self.name, 1, "extension pointer file is empty")
            self._package_url = lines[0]
        return self._package_url

    @property
    def latest_version(self) -> str | None:
        match = _VERSION_IN_URL.search(self.package_url)
        return match.group(1) if match else None

    def installed_version(self) -> str | None:
        manifest = self.destination / "manifest.json"
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        version = data.get("version") if isinstance(data, dict) else None
        return str(version) if version else None

    def is_installed(self) -> bool:
        installed = self.installed_version()
        if installed is None:
            return False
        try:
            latest = self.latest_version
        except NetworkError as e:
            # install() fetches the pointer again under the component retry policy.
            _logging.warning(f"Cannot check the latest extension version ({e}); reinstalling")
            return False
        return latest is not None and installed == latest

    def _find_subdirectory(self, root: Path) -> Path | None:
        found = [p for p in root.rglob(self.source.subdirectory) if p.is_dir()]
        if not found:
            return None
        return min(found, key=lambda p: (len(p.parts), str(p)))

    def install(self) -> None:
        url = self.package_url
        work_dir = self.staging_dir / "extension"
        if work_dir.exists():
            shutil.rmtree(work_dir)
        unpack_dir = work_dir / "unpacked"
        unpack_dir.mkdir(parents=True)

        archive = self.fetcher.download(url, work_dir / url.rsplit("/", 1)[-1])
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(unpack_dir)
        except zipfile.BadZipFile as e:
            raise ComponentInstallError(self.name, 1, f"{archive.name} is not a valid zip archive: {e}")

        extracted = self._find_subdirectory(unpack_dir)
        if extracted is None:
            raise ExtensionLayoutError(self.name, self.source.subdirectory, archive)

        self.destination.mkdir(parents=True, exist_ok=True)
        shutil.copytree(extracted, self.destination, dirs_exist_ok=True)
        if self.platform != "windows":
            self._make_readable(self.destination)
        _logging.info(f"Installed extension {self.latest_version or ''} to {self.destination}")

    @staticmethod
    def _make_readable(root: Path) -> None:
        root.chmod(0o755)
        for path in root.rglob("*"):
            path.chmod(0o755 if path.is_dir() else 0o644)

    def notes(self) -> list[str]:
        return [
            "To enable the extension:",
            " 1. Open Chrome and navigate to 'chrome://extensions/'.",
            " 2. Enable 'Developer mode' (toggle in the top-right corner).",
            f" 3. Click 'Load unpacked' and select the folder: {self.destination}",
        ]
