"""Version extraction and matching utilities."""

import os
import re
from urllib.parse import urlparse

GITHUB_API_HOST = "api.github.com"

_VERSION_IN_FILE_NAME = re.compile(r"(?:^|[-_v])(\d+\.\d+\.\d+)(?=[-_+.]|$)")


def github_auth_headers(url: str) -> dict[str, str]:
    """Return a Bearer token header for GitHub API URLs if GITHUB_TOKEN is set.

    Args:
        url: URL about to be requested

    Returns:
        Header dict to merge into the request, empty when not applicable
    """
    token = os.environ.get("GITHUB_TOKEN")
    if not token:
        return {}
    if urlparse(url).hostname != GITHUB_API_HOST:
        return {}
    return {"Authorization": f"Bearer {token}"}


def strip_version_prefix(tag: str) -> str:
    """Strip a leading 'v' or 'V' from a release tag ('v1.2.0' -> '1.2.0')."""
    tag = tag.strip()
    if tag[:1] in ("v", "V"):
        return tag[1:]
    return tag


def version_from_file_name(file_name: str) -> str:
    """Return the X.Y.Z version embedded in a release file name, or ''.

    'espresso-agent-0.11.0.pkg' -> '0.11.0', 'agent-v1.2.0-x64.msi' -> '1.2.0'.
    """
    match = _VERSION_IN_FILE_NAME.search(file_name)
    return match.group(1) if match else ""


def version_matches(expected: str, output: str) -> bool:
    """Check whether ``output`` reports ``expected`` as a whole word.

    The version may be preceded by 'v' and followed by build metadata. Word
    boundaries keep '1.2.0' from matching inside '11.2.0', but a '.' is a
    boundary too, so '1.2.0' still matches inside '1.2.0.5'.
    """
    expected = strip_version_prefix(expected)
    if not expected:
        return False
    pattern = rf"(?:\bv|\b){re.escape(expected)}\b"
    return re.search(pattern, output) is not None
