# classify.py
# Target classification helpers.
#
# Decide which observed URLs belong to the device under diagnosis and which
# requests hit private API surfaces. stdlib only.

import re
from urllib.parse import urlsplit

PRIVATE_NETWORK_RE = re.compile(r"^(192\.168\.|10\.|172\.(1[6-9]|2[0-9]|3[01])\.|127\.)")

PRIVATE_API_MARKERS = ("/private-api/", "/api/private/", "/internal/")

_URL_TOKEN_RE = re.compile(r"https?://\S+")


def hostname_of(url: str) -> str | None:
    """Return the lower-cased hostname of an absolute URL, or None."""
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def targets_device(url: str, device_url: str) -> bool:
    """
    True iff `url` points at the device: same hostname as `device_url`, or a
    private-network address. Always False while no target is known.
    """
    if not device_url:
        return False

    host = hostname_of(url)
    if not host:
        return False
    if host == hostname_of(device_url):
        return True
    return bool(PRIVATE_NETWORK_RE.match(host))


def is_private_api(url: str) -> bool:
    if any(marker in url for marker in PRIVATE_API_MARKERS):
        return True
    return "private" in url.lower()


def find_url(text: str) -> str | None:
    """First http(s):// token in free text."""
    match = _URL_TOKEN_RE.search(text)
    return match.group(0) if match else None
