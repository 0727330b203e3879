# prober.py
# Header prober: a curl -kv style HEAD request against the device.
#
# Redirects are reported, never followed. TLS is not verified: legacy
# devices routinely present self-signed certificates.

import logging

import httpx

from ot_debug.errors import CollaboratorError
from ot_debug.models import ProbeResult

logger = logging.getLogger(__name__)

PROBE_HEADERS = {
    "User-Agent": "curl/7.68.0",
    "Accept": "*/*",
}


class HeaderProber:
    def __init__(self, timeout_s: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout_s = timeout_s
        self._transport = transport

    async def probe(self, url: str) -> ProbeResult:
        """
        Send a single HEAD request. Raises CollaboratorError on any transport
        or protocol failure; HTTP error statuses are results, not failures.
        """
        try:
            async with httpx.AsyncClient(
                verify=False,
                follow_redirects=False,
                timeout=self._timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.head(url, headers=PROBE_HEADERS)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("HEAD probe of %s failed: %s", url, exc)
            raise CollaboratorError(f"{type(exc).__name__}: {exc}") from exc

        headers = {name.lower(): value for name, value in response.headers.items()}
        return ProbeResult(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=headers,
            url=str(response.url),
        )
