"""Pytest fixtures and utilities for espresso-install tests."""

import tempfile
from pathlib import Path
from typing import Generator

import pytest
import requests

from espresso_install.config import RunConfig, load_sources
from espresso_install.installer.models import InstalledProduct
from espresso_install.installer.platforms import PlatformInstaller
from espresso_install.retry import RetryExecutor


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, content=b"", text=""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._json is None:
            raise requests.JSONDecodeError("Expecting value", "", 0)
        return self._json

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Serves queued responses (or exceptions) per URL and records every request."""

    def __init__(self, routes=None):
        self.routes = {url: list(items) for url, items in (routes or {}).items()}
        self.calls: list[tuple[str, dict]] = []

    def add(self, url, *items):
        self.routes.setdefault(url, []).extend(items)

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            raise requests.ConnectionError(f"no route for {url}")
        # The last queued item repeats.
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def urls(self):
        return [url for url, _ in self.calls]


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakePlatformInstaller(PlatformInstaller):
    """Scriptable platform installer that records every call."""

    platform = "darwin"

    def __init__(
        self,
        detections=None,
        uninstall_code=0,
        install_code=0,
        executable: Path | None = Path("/usr/local/bin/espresso-agent"),
        version_output="espresso-agent 1.2.0",
        version_code=0,
        registered=False,
        package_code=0,
        writes_own_log=False,
    ):
        super().__init__(run=self._no_commands)
        # One entry per detect() call; the last one repeats.
        self.detections = list(detections or [None])
        self.uninstall_code = uninstall_code
        self.install_code = install_code
        self.executable = executable
        self.version_output = version_output
        self.version_code = version_code
        self.registered = registered
        self.package_code = package_code
        self.writes_own_log = writes_own_log
        self.calls: list[str] = []
        self.install_args = None
        self.quarantined: list[Path] = []

    @staticmethod
    def _no_commands(*args, **kwargs):
        raise AssertionError(f"unexpected command: {args}")

    def detect(self, target):
        self.calls.append("detect")
        if len(self.detections) > 1:
            return self.detections.pop(0)
        return self.detections[0]

    def uninstall(self, product, target, log_path):
        self.calls.append("uninstall")
        return "uninstalled", self.uninstall_code

    def install(self, package, target, log_path, backend_host, token):
        self.calls.append("install")
        self.install_args = (package, log_path, backend_host, token)
        return "installed", self.install_code

    def package_command(self, package, log_path=None):
        return ["fake-installer", str(package)]

    def install_package(self, package, log_path=None):
        self.calls.append("install_package")
        return "", self.package_code

    def is_registered(self, identifiers):
        return self.registered

    def clear_quarantine(self, path):
        self.quarantined.append(path)

    def make_executable(self, path):
        self.calls.append("make_executable")

    def locate_executable(self, target):
        self.calls.append("locate")
        return self.executable

    def query_version(self, executable):
        self.calls.append("version")
        return self.version_output, self.version_code


PRIOR = InstalledProduct(
    name="com.espressolabs.agent", version="1.1.0", identifier="com.espressolabs.agent"
)

RELEASE_URL = "https://api.github.com/repos/espressolabs-com/agent-releases/releases/latest"


def release_payload(tag="v1.2.0", names=("espresso-agent-1.2.0.pkg",)):
    return {
        "tag_name": tag,
        "assets": [
            {"name": name, "browser_download_url": f"https://downloads.example.com/{name}"}
            for name in names
        ],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def executor(sleeper) -> RetryExecutor:
    return RetryExecutor(sleep=sleeper)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def sources():
    return load_sources()


@pytest.fixture
def run_config() -> RunConfig:
    return RunConfig(
        backend_host="backend.example.com",
        token="tok-123",
        platform="darwin",
        arch="arm64",
        install_jq=False,
    )


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    for name in ("GITHUB_TOKEN", "ESPRESSO_INSTALL_SOURCES", "CI", "INTERACTIVE", "NONINTERACTIVE"):
        monkeypatch.delenv(name, raising=False)
