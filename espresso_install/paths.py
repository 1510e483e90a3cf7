"""Temporary path helpers for espresso-install."""

import shutil
import tempfile
from pathlib import Path

INSTALL_LOG_NAME = "espresso-agent-install.log"


def get_install_log_path() -> Path:
    """Return the deterministic install log location, kept after the run."""
    return Path(tempfile.gettempdir()) / INSTALL_LOG_NAME


def create_staging_dir() -> Path:
    """Create a staging directory owned by this run."""
    return Path(tempfile.mkdtemp(prefix="espresso-install-"))


def remove_staging_dir(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
