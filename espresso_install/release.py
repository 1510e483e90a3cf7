"""Release resolution and artifact downloads."""

import logging
from pathlib import Path
from typing import Any, Callable

import requests

from .errors import (
    AmbiguousAsset,
    DownloadFailed,
    NetworkError,
    NoMatchingAsset,
    ResolutionError,
)
from .installer.models import ReleaseArtifact
from .retry import DOWNLOAD_POLICY, RetriesExhausted, RetryExecutor, RetryPolicy
from .versions import github_auth_headers, strip_version_prefix, version_from_file_name

API_TIMEOUT = 15
DOWNLOAD_TIMEOUT = 30
DOWNLOAD_CHUNK_SIZE = 131072

_logging = logging.getLogger(__name__)


class ReleaseResolver:
    """Selects the single release asset built for this platform and arch."""

    def __init__(
        self,
        asset_suffixes: dict[str, dict[str, str]],
        executor: RetryExecutor,
        policy: RetryPolicy = DOWNLOAD_POLICY,
        session: requests.Session | None = None,
    ):
        self.asset_suffixes = asset_suffixes
        self.executor = executor
        self.policy = policy
        self.session = session or requests.Session()

    def suffix_for(self, platform: str, arch: str) -> str:
        suffixes = self.asset_suffixes.get(platform)
        if not suffixes:
            raise ResolutionError(
                f"The EspressoLabs Agent is not supported on platform '{platform}'."
            )
        suffix = suffixes.get(arch)
        if not suffix:
            supported = ", ".join(sorted(suffixes))
            raise ResolutionError(
                f"The EspressoLabs Agent is not supported on architecture '{arch}' "
                f"(supported: {supported})."
            )
        return suffix

    def _get_release(self, url: str) -> dict[str, Any]:
        headers = {"Accept": "application/vnd.github+json"}
        headers.update(github_auth_headers(url))
        try:
            response = self.session.get(url, headers=headers, timeout=API_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except ValueError as e:
            raise ResolutionError(f"Release metadata from {url} is not valid JSON: {e}")
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch release information: {e}")
        if not isinstance(data, dict):
            raise ResolutionError(f"Release metadata from {url} must be a JSON object")
        return data

    def fetch_release(self, index_url: str) -> dict[str, Any]:
        try:
            return self.executor.run(
                lambda: self._get_release(index_url),
                self.policy,
                f"fetch release metadata from {index_url}",
            )
        except RetriesExhausted as e:
            raise NetworkError(
                f"Failed {e.attempts} time(s) fetching release metadata from "
                f"{index_url}: {e.last_error}"
            ) from e

    def resolve(self, index_url: str, platform: str, arch: str) -> ReleaseArtifact:
        # Validate before any network traffic.
        suffix = self.suffix_for(platform, arch)
        release = self.fetch_release(index_url)

        matches = []
        for asset in release.get("assets") or []:
            name = asset.get("name") if isinstance(asset, dict) else None
            if isinstance(name, str) and name.endswith(suffix):
                matches.append(asset)

        if not matches:
            raise NoMatchingAsset(
                f"No asset ending in '{suffix}' found in the latest release "
                f"for {platform}/{arch}."
            )
        if len(matches) > 1:
            names = ", ".join(a["name"] for a in matches)
            raise AmbiguousAsset(
                f"{len(matches)} assets match {platform}/{arch} ('{suffix}'): {names}"
            )

        asset = matches[0]
        url = asset.get("browser_download_url")
        if not isinstance(url, str) or not url:
            raise ResolutionError(f"Asset {asset['name']} has no download URL")

        version = strip_version_prefix(str(release.get("tag_name") or ""))
        if not version:
            version = version_from_file_name(asset["name"])
            if not version:
                raise ResolutionError(
                    f"Cannot determine the release version from {asset['name']}"
                )

        artifact = ReleaseArtifact(
            version=version,
            platform=platform,
            arch=arch,
            download_url=url,
            file_name=asset["name"],
        )
        _logging.info(f"Resolved {artifact.file_name} (version {artifact.version})")
        return artifact


class ArtifactFetcher:
    """Downloads artifacts into the run's staging directory with retries."""

    def __init__(
        self,
        executor: RetryExecutor,
        policy: RetryPolicy = DOWNLOAD_POLICY,
        session: requests.Session | None = None,
        clear_quarantine: Callable[[Path], None] | None = None,
    ):
        self.executor = executor
        self.policy = policy
        self.session = session or requests.Session()
        self.clear_quarantine = clear_quarantine

    def _download_once(self, url: str, destination: Path) -> Path:
        try:
            with self.session.get(url, timeout=DOWNLOAD_TIMEOUT, stream=True) as response:
                response.raise_for_status()
                written = 0
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
                            written += len(chunk)
        except requests.RequestException as e:
            raise NetworkError(str(e))
        if written == 0:
            raise NetworkError("downloaded file is empty")
        return destination

    def download(self, url: str, destination: Path) -> Path:
        """Download ``url`` to ``destination``, raising DownloadFailed when exhausted."""
        _logging.info(f"Downloading {url}")
        try:
            path = self.executor.run(
                lambda: self._download_once(url, destination),
                self.policy,
                f"download {url}",
            )
        except RetriesExhausted as e:
            raise DownloadFailed(url, e.attempts, str(e.last_error)) from e
        if self.clear_quarantine is not None:
            self.clear_quarantine(path)
        _logging.info(f"Downloaded to {path}")
        return path

    def fetch(self, artifact: ReleaseArtifact, staging_dir: Path) -> Path:
        return self.download(artifact.download_url, staging_dir / artifact.file_name)

    def _get_text_once(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=API_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(str(e))
        return response.text.strip()

    def fetch_text(self, url: str) -> str:
        """Fetch a small text resource such as a pointer file."""
        try:
            return self.executor.run(
                lambda: self._get_text_once(url), self.policy, f"fetch {url}"
            )
        except RetriesExhausted as e:
            raise DownloadFailed(url, e.attempts, str(e.last_error)) from e


__all__ = ["ReleaseResolver", "ArtifactFetcher"]
