"""Run configuration and sources file loading.

``RunConfig`` is built once at startup from the command line and environment
and handed explicitly to every component. ``Sources`` describes where the
agent, its components and their install targets live; it is read from the
bundled ``data/sources.yaml`` unless ``ESPRESSO_INSTALL_SOURCES`` points at
another file.
"""

import os
import platform as _platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .retry import COMPONENT_POLICY, DOWNLOAD_POLICY, Backoff, RetryPolicy

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def detect_platform(system: str | None = None) -> str:
    """Return 'darwin', 'windows' or the lowercased system name."""
    system = (system or _platform.system()).lower()
    if system.startswith("win"):
        return "windows"
    return system


def normalize_arch(machine: str | None = None) -> str:
    """Map uname/Windows machine names onto 'x64' / 'arm64'.

    Unknown values are returned lowercased and unchanged; the release resolver
    rejects them.
    """
    machine = (machine or _platform.machine()).lower()
    return _ARCH_ALIASES.get(machine, machine)


def _is_set(env: Mapping[str, str], name: str) -> bool:
    return bool(env.get(name))


def resolve_interactive(env: Mapping[str, str], stdin_is_tty: bool) -> tuple[bool, str]:
    """Decide between interactive and unattended operation.

    Returns:
        Tuple of (interactive, reason)

    Raises:
        ConfigError: If the environment asks for both modes at once
    """
    if _is_set(env, "CI") and _is_set(env, "INTERACTIVE"):
        raise ConfigError("Cannot run force-interactive mode in CI.")
    if _is_set(env, "INTERACTIVE") and _is_set(env, "NONINTERACTIVE"):
        raise ConfigError(
            "Both $INTERACTIVE and $NONINTERACTIVE are set. "
            "Please unset at least one variable and try again."
        )

    if _is_set(env, "NONINTERACTIVE"):
        return False, "Running in non-interactive mode because $NONINTERACTIVE is set."
    if _is_set(env, "CI"):
        return False, "Running in non-interactive mode because $CI is set."
    if not stdin_is_tty:
        if _is_set(env, "INTERACTIVE"):
            return True, (
                "Running in interactive mode despite stdin not being a TTY "
                "because $INTERACTIVE is set."
            )
        return False, "Running in non-interactive mode because stdin is not a TTY."
    return True, ""


@dataclass(frozen=True)
class RunConfig:
    """Immutable configuration for one installer run."""

    backend_host: str
    token: str
    platform: str
    arch: str
    interactive: bool = False
    install_extension: bool = False
    install_antivirus: bool = False
    install_jq: bool = True
    keep_staging: bool = False

    def __post_init__(self):
        if not self.backend_host or not self.token:
            raise ConfigError("both --backend-host and --token must be set.")

    @classmethod
    def from_environment(
        cls,
        backend_host: str,
        token: str,
        env: Mapping[str, str] | None = None,
        stdin_is_tty: bool | None = None,
        system: str | None = None,
        machine: str | None = None,
        **flags: bool,
    ) -> "RunConfig":
        env = os.environ if env is None else env
        if stdin_is_tty is None:
            stdin_is_tty = sys.stdin.isatty()
        interactive, _ = resolve_interactive(env, stdin_is_tty)
        return cls(
            backend_host=backend_host,
            token=token,
            platform=detect_platform(system),
            arch=normalize_arch(machine),
            interactive=interactive,
            **flags,
        )


@dataclass(frozen=True)
class ProductSource:
    name_pattern: str
    candidate_paths: list[Path]
    executable: str
    uninstall_script: Path | None = None
    reconfigure_script: Path | None = None


@dataclass(frozen=True)
class ExtensionSource:
    pointer_url: str
    subdirectory: str
    destination: dict[str, Path]


@dataclass(frozen=True)
class AntivirusSource:
    urls: dict[str, dict[str, str]]
    product_paths: dict[str, list[Path]]
    receipts: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class JqSource:
    urls: dict[str, dict[str, str]]
    destination: dict[str, Path]


@dataclass(frozen=True)
class Sources:
    release_index: str
    asset_suffixes: dict[str, dict[str, str]]
    product: dict[str, ProductSource]
    extension: ExtensionSource
    antivirus: AntivirusSource
    jq: JqSource
    download_policy: RetryPolicy = DOWNLOAD_POLICY
    component_policy: RetryPolicy = COMPONENT_POLICY


def get_packaged_sources_path() -> Path:
    """Return path to the bundled sources file."""
    return Path(__file__).parent / "data" / "sources.yaml"


def get_sources_path() -> Path:
    """Return the sources file to use.

    Priority:
    1. ESPRESSO_INSTALL_SOURCES environment variable (if set)
    2. The packaged data/sources.yaml
    """
    if os.environ.get("ESPRESSO_INSTALL_SOURCES"):
        return Path(os.environ["ESPRESSO_INSTALL_SOURCES"])
    return get_packaged_sources_path()


def _require(data: Mapping[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in data:
        raise ConfigError(f"{where}.{key} is required")
    value = data[key]
    if not isinstance(value, kind):
        raise ConfigError(
            f"{where}.{key} must be a {kind.__name__}, got {type(value).__name__}"
        )
    return value


def _string_table(data: Mapping[str, Any], where: str) -> dict[str, dict[str, str]]:
    table = {}
    for plat, entries in data.items():
        if not isinstance(entries, dict):
            raise ConfigError(f"{where}.{plat} must be a dict, got {type(entries).__name__}")
        for arch, value in entries.items():
            if not isinstance(value, str) or not value:
                raise ConfigError(f"{where}.{plat}.{arch} must be a non-empty string")
        table[str(plat)] = {str(a): v for a, v in entries.items()}
    return table


def _path_map(data: Mapping[str, Any], where: str) -> dict[str, Path]:
    paths = {}
    for plat, value in data.items():
        if not isinstance(value, str) or not value:
            raise ConfigError(f"{where}.{plat} must be a non-empty string")
        paths[str(plat)] = Path(value)
    return paths


def _retry_policy(data: Mapping[str, Any], where: str, default: RetryPolicy) -> RetryPolicy:
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a dict, got {type(data).__name__}")
    try:
        return RetryPolicy(
            max_attempts=int(data.get("max_attempts", default.max_attempts)),
            base_delay=float(data.get("base_delay", default.base_delay)),
            backoff=Backoff(data.get("backoff", default.backoff.value)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}")


def validate_sources(data: Any) -> Sources:
    """Validate and convert a raw dict into ``Sources``.

    Raises:
        ConfigError: If validation fails, naming the offending field path
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Sources must be a mapping, got {type(data).__name__}")

    release_index = _require(data, "release_index", str, "sources")
    suffixes = _string_table(_require(data, "asset_suffixes", dict, "sources"), "asset_suffixes")

    product = {}
    for plat, entry in _require(data, "product", dict, "sources").items():
        where = f"product.{plat}"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where} must be a dict, got {type(entry).__name__}")
        candidates = _require(entry, "candidate_paths", list, where)
        uninstall_script = entry.get("uninstall_script")
        reconfigure_script = entry.get("reconfigure_script")
        product[str(plat)] = ProductSource(
            name_pattern=_require(entry, "name_pattern", str, where),
            candidate_paths=[Path(p) for p in candidates],
            executable=_require(entry, "executable", str, where),
            uninstall_script=Path(uninstall_script) if uninstall_script else None,
            reconfigure_script=Path(reconfigure_script) if reconfigure_script else None,
        )

    ext = _require(data, "extension", dict, "sources")
    extension = ExtensionSource(
        pointer_url=_require(ext, "pointer_url", str, "extension"),
        subdirectory=_require(ext, "subdirectory", str, "extension"),
        destination=_path_map(_require(ext, "destination", dict, "extension"), "extension.destination"),
    )

    av = _require(data, "antivirus", dict, "sources")
    product_paths = {}
    for plat, paths in _require(av, "product_paths", dict, "antivirus").items():
        if not isinstance(paths, list):
            raise ConfigError(f"antivirus.product_paths.{plat} must be a list")
        product_paths[str(plat)] = [Path(p) for p in paths]
    antivirus = AntivirusSource(
        urls=_string_table(_require(av, "urls", dict, "antivirus"), "antivirus.urls"),
        product_paths=product_paths,
        receipts=list(av.get("receipts") or []),
        features=list(av.get("features") or []),
    )

    jq_data = _require(data, "jq", dict, "sources")
    jq = JqSource(
        urls=_string_table(_require(jq_data, "urls", dict, "jq"), "jq.urls"),
        destination=_path_map(_require(jq_data, "destination", dict, "jq"), "jq.destination"),
    )

    retry = data.get("retry") or {}
    if not isinstance(retry, dict):
        raise ConfigError(f"retry must be a dict, got {type(retry).__name__}")

    return Sources(
        release_index=release_index,
        asset_suffixes=suffixes,
        product=product,
        extension=extension,
        antivirus=antivirus,
        jq=jq,
        download_policy=_retry_policy(retry.get("download"), "retry.download", DOWNLOAD_POLICY),
        component_policy=_retry_policy(retry.get("component"), "retry.component", COMPONENT_POLICY),
    )


def load_sources(path: Path | None = None) -> Sources:
    """Load and validate the sources YAML file."""
    path = path or get_sources_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Sources file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Sources file {path} is not valid YAML: {e}")
    return validate_sources(data)


__all__ = [
    "RunConfig",
    "Sources",
    "ProductSource",
    "ExtensionSource",
    "AntivirusSource",
    "JqSource",
    "detect_platform",
    "normalize_arch",
    "resolve_interactive",
    "get_sources_path",
    "load_sources",
    "validate_sources",
]
