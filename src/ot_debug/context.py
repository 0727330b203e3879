# context.py
# Diagnostic context: the single mutable aggregate of one debug session.
#
# Owned exclusively by DebugSession and passed by reference into each phase
# analyzer. Nothing here is ever cleared; the report reads it in full.

import logging

from ot_debug import classify
from ot_debug.models import (
    ConsoleObservation,
    NetworkObservation,
    PageLoadStatus,
    ProbeResult,
)
from ot_debug.rules import RuleCatalog

logger = logging.getLogger(__name__)


class DiagnosticContext:
    def __init__(self) -> None:
        self.device_url: str = ""
        self.device_ip: str = ""
        self.device_hostname: str = ""
        self.current_step: str = ""

        self.default_rules_enabled: bool = False
        self.page_load_status: PageLoadStatus = PageLoadStatus.UNSET
        self.final_url: str = ""
        self.page_title: str = ""

        self.total_images: int = 0
        self.broken_images: list[str] = []
        self.broken_links: list[str] = []
        self.device_ip_references: list[str] = []
        self.websocket_issues: list[str] = []
        self.redirects: list[NetworkObservation] = []

        self.network_requests: list[NetworkObservation] = []
        self.console_errors: list[ConsoleObservation] = []
        self.curl_results: ProbeResult | None = None

        self.rules = RuleCatalog()
        self.issues: list[str] = []

    # ------------------------------------------------------------------
    # Target identity
    # ------------------------------------------------------------------

    def set_target(self, url: str) -> bool:
        """
        Adopt `url` as the device target unless one is already set.
        Returns True when the target changed.
        """
        if self.device_url:
            return False

        hostname = classify.hostname_of(url) or ""
        self.device_url = url
        self.device_ip = hostname
        self.device_hostname = hostname
        logger.info("Target device set to %s", url)
        return True

    def targets_device(self, url: str) -> bool:
        return classify.targets_device(url, self.device_url)

    # ------------------------------------------------------------------
    # Findings
    # ------------------------------------------------------------------

    def add_issue(self, *issues: str) -> None:
        self.issues.extend(issues)

    def issue_mentions(self, needle: str) -> bool:
        return any(needle in issue for issue in self.issues)

    # ------------------------------------------------------------------
    # Inspector event folding
    # ------------------------------------------------------------------

    def record_request(self, url: str, method: str, headers: dict[str, str]) -> NetworkObservation:
        observation = NetworkObservation(
            url=url,
            method=method,
            headers=dict(headers),
            is_private_api=classify.is_private_api(url),
            is_device_ip=self.targets_device(url),
        )
        self.network_requests.append(observation)
        return observation

    def record_response(self, url: str, status: int, headers: dict[str, str]) -> NetworkObservation | None:
        """Attach a response to the first still-pending request for `url`."""
        for observation in self.network_requests:
            if observation.url == url and observation.status is None:
                observation.status = status
                observation.response_headers = dict(headers)
                if status >= 400:
                    observation.error = f"HTTP {status}"
                return observation

        logger.debug("Response for unknown request %s (HTTP %s)", url, status)
        return None

    def record_console(
        self,
        level: str,
        message: str,
        url: str | None = None,
        line_number: int | None = None,
    ) -> ConsoleObservation | None:
        """Retain errors and messages matching a known signature; drop the rest."""
        lowered = message.lower()
        observation = ConsoleObservation(
            type=level,
            message=message,
            url=url or None,
            line_number=line_number,
            is_mime_type="mime type" in lowered,
            is_bootstrap_js="bootstrap.js" in lowered,
        )
        if level == "error" or observation.is_mime_type or observation.is_bootstrap_js:
            self.console_errors.append(observation)
            return observation
        return None
