# phases.py
# The seven analysis phases of the OT debugging workflow.
#
# Each analyzer takes the DiagnosticContext by reference plus the Toolkit of
# external collaborators, and appends issues and rules. None of them is
# idempotent except phase 1; re-running one appends duplicate findings.
#
# Dispatch order is the PHASES list below: first matching phase wins.

import logging
import re
from typing import Awaitable, Callable, NamedTuple

from ot_debug.config import Settings
from ot_debug.context import DiagnosticContext
from ot_debug.errors import CollaboratorError
from ot_debug.inspector import (
    PAGE_CONTENT_PROBE,
    RESOURCE_PROBE,
    WEBSOCKET_PROBE,
    PageInspector,
)
from ot_debug.models import PageContent, PageLoadStatus, ResourceInventory, RewriteRule
from ot_debug.prober import HeaderProber
from ot_debug.rules import (
    DEVICE_EXTERNAL_FQDN,
    DEVICE_HOSTNAME,
    DEVICE_IP,
    DEVICE_REAL_IP,
    baseline_rules,
    host_path_rule,
    replace_leading_origin,
    replace_origin,
)

logger = logging.getLogger(__name__)

WEBSOCKET_PORTS = (8080, 8081, 8443, 9001)
KNOWN_OT_PORTS = ("443", "8443", "8501", "8080", "80")
STATIC_MARKERS = ("/static/", "/assets/", "/js/", "/css/")

_PORT_RE = re.compile(r":(\d+)")
_REALM_RE = re.compile(r'realm="([^"]+)"')
_COOKIE_DOMAIN_RE = re.compile(r"domain=([^;,\s]+)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class Toolkit:
    """
    External collaborators available to the analyzers.

    The inspector is a lazily created singleton: acquired on the first
    "start" step, released on "finish", recreated by a later "start".
    """

    def __init__(
        self,
        settings: Settings,
        prober: HeaderProber,
        inspector_factory: Callable[[], PageInspector],
    ) -> None:
        self.settings = settings
        self.prober = prober
        self._inspector_factory = inspector_factory
        self.inspector: PageInspector | None = None

    async def acquire_inspector(self, ctx: DiagnosticContext) -> None:
        if self.inspector is None:
            self.inspector = self._inspector_factory()
        await self.inspector.open(ctx)

    async def release_inspector(self) -> None:
        if self.inspector is None:
            return
        inspector, self.inspector = self.inspector, None
        await inspector.close()


# ---------------------------------------------------------------------------
# Phase 1: default rules
# ---------------------------------------------------------------------------


async def enable_default_rules(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    if ctx.default_rules_enabled:
        return

    ctx.current_step = "Step 1: Enable Default Rules"
    ctx.default_rules_enabled = True
    ctx.rules.add(*baseline_rules())
    ctx.add_issue("Default rules enabled - baseline proxy configuration applied")


# ---------------------------------------------------------------------------
# Phase 2: page load
# ---------------------------------------------------------------------------


async def analyze_page_loading(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    inspector = toolkit.inspector
    if not ctx.device_url or inspector is None:
        logger.warning("Page load analysis skipped: no target or browser page")
        return

    ctx.current_step = "Step 2: Analyze Page Loading Status"

    try:
        result = await inspector.navigate(
            ctx.device_url,
            wait_until="domcontentloaded",
            timeout_ms=toolkit.settings.navigation_timeout_ms,
        )
        if result is None:
            ctx.page_load_status = PageLoadStatus.NOT_LOADED
            ctx.add_issue("CRITICAL: Web page is not loaded at all - no response from device")
            return
        ctx.final_url = result.final_url

        if result.status == 400:
            ctx.page_load_status = PageLoadStatus.NOT_LOADED
            ctx.add_issue("ERROR 400 hostname invalid - device requires specific hostname")
            ctx.rules.add(
                RewriteRule(
                    kind="header",
                    action="add",
                    header_name="Host",
                    header_value=ctx.device_hostname or DEVICE_HOSTNAME,
                    description="Fix hostname requirement for device (Error 400)",
                    priority=10,
                ),
                RewriteRule(
                    kind="header",
                    action="add",
                    header_name="X-Real-IP",
                    header_value=DEVICE_REAL_IP,
                    description="Add real IP address for device authentication",
                    priority=11,
                ),
            )
            return

        content = PageContent.model_validate(await inspector.evaluate(PAGE_CONTENT_PROBE))
    except CollaboratorError as exc:
        logger.warning("Page load failed: %s", exc)
        ctx.page_load_status = PageLoadStatus.NOT_LOADED
        ctx.add_issue(f"Page loading failed with error: {exc}")
        return

    ctx.page_title = content.page_title
    if not content.has_body or content.body_length < 100:
        ctx.page_load_status = PageLoadStatus.NOT_LOADED
        ctx.add_issue("Web page is not loaded at all - no content detected")
    elif content.has_login_form:
        ctx.page_load_status = PageLoadStatus.FULLY_LOADED
        ctx.add_issue("Web page loaded successfully with login form detected")
    elif result.status != 200:
        ctx.page_load_status = PageLoadStatus.PARTIALLY_LOADED
        ctx.add_issue("Web page is partially loaded - missing login elements")
    else:
        ctx.page_load_status = PageLoadStatus.FULLY_LOADED

    # Common after a device firmware upgrade.
    if content.has_try_again_message:
        ctx.add_issue(
            "LOGIN ISSUE: 'Try again' message detected - common after device upgrade",
            "RECOMMENDATION: Apply comprehensive rewrite rules and check for Alpha weblink requirement",
        )


# ---------------------------------------------------------------------------
# Phase 3: resources
# ---------------------------------------------------------------------------


async def analyze_resources(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    inspector = toolkit.inspector
    if inspector is None:
        logger.warning("Resource analysis skipped: no browser page")
        return

    ctx.current_step = "Step 3: Analyze Resources (Images, Links, Static Files)"

    try:
        inventory = ResourceInventory.model_validate(await inspector.evaluate(RESOURCE_PROBE))
    except CollaboratorError as exc:
        ctx.add_issue(f"Resource analysis failed: {exc}")
        return

    ctx.total_images = len(inventory.all_images)
    ctx.broken_images = [src for src in inventory.broken_images if ctx.targets_device(src)]
    if ctx.broken_images:
        ctx.add_issue(
            f"RESOURCE ISSUE: Found {len(ctx.broken_images)} broken images pointing to device IP/hostname"
        )
        for src in ctx.broken_images:
            ctx.rules.add(host_path_rule(src, "Fix broken image resource: {target}", 20))

    ctx.broken_links = [href for href in inventory.links if ctx.targets_device(href)]
    if ctx.broken_links:
        ctx.add_issue(
            f"LINK ISSUE: Found {len(ctx.broken_links)} links pointing to device IP - links not working"
        )
        for href in ctx.broken_links:
            ctx.rules.add(host_path_rule(href, "Fix device IP link: {target}", 21))

    ctx.device_ip_references = [
        src
        for src in inventory.script_sources + inventory.stylesheet_sources
        if ctx.targets_device(src) or not src.startswith("http")
    ]
    if ctx.device_ip_references:
        ctx.add_issue(
            f"STATIC RESOURCE ISSUE: Found {len(ctx.device_ip_references)} static resources "
            "that may need rewriting"
        )
        for resource in ctx.device_ip_references:
            if "/static/" in resource or "/assets/" in resource:
                ctx.rules.add(
                    RewriteRule(
                        kind="body",
                        action="find_replace",
                        pattern=resource,
                        replacement=replace_leading_origin(resource),
                        description=f"Fix static resource path: {resource}",
                        priority=22,
                    )
                )


# ---------------------------------------------------------------------------
# Phase 4: WebSocket
# ---------------------------------------------------------------------------


async def analyze_websocket(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    inspector = toolkit.inspector
    if not ctx.device_url or inspector is None:
        logger.warning("WebSocket analysis skipped: no target or browser page")
        return

    ctx.current_step = "Step 4: Analyze WebSocket Connections"

    try:
        has_websocket = bool(await inspector.evaluate(WEBSOCKET_PROBE))
    except CollaboratorError as exc:
        ctx.add_issue(f"WebSocket analysis failed: {exc}")
        return

    if not has_websocket:
        return

    ctx.websocket_issues.append("WebSocket connections detected")
    ctx.add_issue("WebSocket connections detected - may need special proxy handling")
    for port in WEBSOCKET_PORTS:
        ctx.rules.add(
            RewriteRule(
                kind="body",
                action="find_replace",
                pattern=f"ws://{ctx.device_hostname}:{port}",
                replacement=f"wss://{DEVICE_EXTERNAL_FQDN}:{port}",
                description=f"Fix WebSocket connection on port {port}",
                priority=30,
            )
        )


# ---------------------------------------------------------------------------
# Phase 5: redirects
# ---------------------------------------------------------------------------


async def analyze_redirects(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    ctx.current_step = "Step 5: Analyze Redirects"

    ctx.redirects = [
        obs for obs in ctx.network_requests if obs.status is not None and 300 <= obs.status < 400
    ]
    if not ctx.redirects:
        return

    ctx.add_issue(f"Found {len(ctx.redirects)} redirects - potential for redirect loops")
    for redirect in ctx.redirects:
        location = (redirect.response_headers or {}).get("location")
        if not location:
            continue

        port = _PORT_RE.search(location)
        if port:
            ctx.add_issue(
                f"Device redirects to port {port.group(1)} - consider onboarding with this port"
            )

        ctx.rules.add(
            RewriteRule(
                kind="header",
                action="replace",
                header_name="Location",
                pattern=location,
                replacement=replace_origin(location),
                description=f"Fix redirect to: {location}",
                priority=40,
            )
        )


# ---------------------------------------------------------------------------
# Phase 6: network failures and console errors
# ---------------------------------------------------------------------------


async def analyze_network_and_console(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    ctx.current_step = "Step 6: Analyze Network Failures and Console Errors"

    failures = [obs for obs in ctx.network_requests if obs.status is not None and obs.status >= 400]
    if failures:
        ctx.add_issue(f"NETWORK ERRORS: Found {len(failures)} network errors (404/500)")

    for failure in failures:
        if failure.status == 404:
            ctx.add_issue(f"404 ERROR: {failure.url} - resource not found")
        elif failure.status == 500:
            ctx.add_issue(f"500 ERROR: {failure.url} - server error")

        if failure.is_device_ip and any(marker in failure.url for marker in STATIC_MARKERS):
            ctx.rules.add(
                host_path_rule(
                    failure.url,
                    f"Fix {failure.status} error for static resource: {{target}}",
                    50,
                )
            )

    mime_errors = [obs for obs in ctx.console_errors if obs.is_mime_type]
    if mime_errors:
        ctx.add_issue(
            f"MIME TYPE ISSUE: {len(mime_errors)} MIME type mismatch errors detected in console"
        )
        ctx.rules.add(
            RewriteRule(
                kind="header",
                action="add",
                header_name="Content-Type",
                header_value="application/javascript",
                condition="path ends with .js",
                description="Fix MIME type mismatch for JavaScript files",
                priority=60,
            ),
            RewriteRule(
                kind="header",
                action="add",
                header_name="Content-Type",
                header_value="text/css",
                condition="path ends with .css",
                description="Fix MIME type mismatch for CSS files",
                priority=61,
            ),
        )

    if any(obs.is_bootstrap_js for obs in ctx.console_errors):
        ctx.add_issue(
            "BOOTSTRAP.JS ISSUE: Bootstrap.js HTTPS protocol issue detected (Reference: DSD-3756)",
            "ROOT CAUSE: Device configured as HTTP but accessed via HTTPS through RA portal",
        )
        ctx.rules.add(
            RewriteRule(
                kind="body",
                action="find_replace",
                pattern="https",
                replacement="spdy",
                path="bootstrap.js",
                description="Fix bootstrap.js HTTPS protocol issue (DSD-3756) - Critical OT fix",
                priority=70,
            )
        )
        ctx.add_issue(
            "NOTE: If bootstrap.js file is updated, this rule may need adjustment",
            "ALTERNATIVE: If HTTPS is properly configured on device, onboard as HTTPS and remove this rule",
        )

    private_calls = [obs for obs in ctx.network_requests if obs.is_private_api]
    if private_calls:
        ctx.add_issue(
            f"PRIVATE API ISSUE: Found {len(private_calls)} private API calls - may need JSON body rewrite"
        )
        for call in private_calls:
            ctx.rules.add(
                RewriteRule(
                    kind="body",
                    action="find_replace",
                    pattern=DEVICE_IP,
                    replacement=DEVICE_EXTERNAL_FQDN,
                    path="/private-api/*" if "/private-api/" in call.url else "/api/private/*",
                    description=f"JSON body rewrite for private API: {call.url}",
                    priority=75,
                )
            )
        ctx.add_issue("IMPORTANT: Enable JSON body rewrite for private API endpoints")

    for obs in ctx.console_errors:
        lowered = obs.message.lower()
        if "websocket" in lowered:
            ctx.add_issue(f"WEBSOCKET CONSOLE ERROR: {obs.message}")
        if "cors" in lowered:
            ctx.add_issue(f"CORS ERROR: {obs.message} - may need header rules")
        if "certificate" in lowered:
            ctx.add_issue(f"SSL CERTIFICATE ERROR: {obs.message}")


# ---------------------------------------------------------------------------
# Phase 7: curl-style header probe
# ---------------------------------------------------------------------------


async def perform_curl_analysis(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    if not ctx.device_url:
        logger.warning("Curl analysis skipped: no target")
        return

    ctx.current_step = "Step 7: Perform Detailed Curl Analysis"

    try:
        result = await toolkit.prober.probe(ctx.device_url)
    except CollaboratorError as exc:
        ctx.add_issue(
            f"Curl analysis failed: {exc}",
            "RECOMMENDATION: Try accessing device directly via jbox browser for manual analysis",
        )
        return

    ctx.curl_results = result
    ctx.add_issue(f"CURL ANALYSIS: HTTP {result.status} {result.status_text}")
    headers = result.headers

    location = headers.get("location")
    if location:
        ctx.add_issue(f"REDIRECT DETECTED: Location header points to {location}")

        if ctx.targets_device(location):
            ctx.add_issue("REDIRECT ISSUE: Location header contains device IP/hostname")
            ctx.rules.add(
                RewriteRule(
                    kind="header",
                    action="replace",
                    header_name="Location",
                    pattern=location,
                    replacement=replace_origin(location),
                    description="Fix Location header hostname reference",
                    priority=80,
                )
            )

        port = _PORT_RE.search(location)
        if port:
            ctx.add_issue(
                f"PORT RECOMMENDATION: Device redirects to port {port.group(1)} "
                "- consider onboarding with this port"
            )
            if port.group(1) in KNOWN_OT_PORTS:
                ctx.add_issue(f"KNOWN PORT: Port {port.group(1)} is a common OT device port")

    server = headers.get("server")
    if server and ("hostname" in server or "Host" in server):
        ctx.add_issue(f"HOSTNAME REQUIREMENT: Server header indicates hostname requirement: {server}")
        ctx.rules.add(
            RewriteRule(
                kind="header",
                action="add",
                header_name="Host",
                header_value=DEVICE_HOSTNAME,
                description="Server requires specific hostname",
                priority=81,
            )
        )

    www_auth = headers.get("www-authenticate")
    if www_auth:
        ctx.add_issue(f"AUTHENTICATION: {www_auth}")
        realm = _REALM_RE.search(www_auth)
        if realm:
            ctx.add_issue(f"AUTH REALM: {realm.group(1)}")

    csp = headers.get("content-security-policy")
    if csp:
        ctx.add_issue("CSP DETECTED: Content Security Policy may block proxy resources")
        if any(ref in csp for ref in ("localhost", "127.0.0.1", "192.168.")):
            ctx.add_issue("CSP ISSUE: Policy contains local references that may cause issues")

    hsts = headers.get("strict-transport-security")
    if hsts:
        ctx.add_issue(f"HSTS DETECTED: {hsts} - may affect HTTP to HTTPS transitions")

    set_cookie = headers.get("set-cookie")
    if set_cookie:
        domain = _COOKIE_DOMAIN_RE.search(set_cookie)
        if domain and ctx.targets_device(f"http://{domain.group(1).lstrip('.')}"):
            ctx.add_issue("COOKIE DOMAIN ISSUE: Set-Cookie contains device domain - may need rewrite")
            ctx.rules.add(
                RewriteRule(
                    kind="header",
                    action="replace",
                    header_name="Set-Cookie",
                    pattern="domain=[^;]+",
                    replacement=f"domain={DEVICE_EXTERNAL_FQDN}",
                    description="Fix cookie domain reference",
                    priority=82,
                )
            )

    x_frame = headers.get("x-frame-options")
    if x_frame and ("DENY" in x_frame or "SAMEORIGIN" in x_frame):
        ctx.add_issue(f"X-FRAME-OPTIONS: {x_frame} - may prevent iframe embedding in RA portal")


# ---------------------------------------------------------------------------
# Session teardown
# ---------------------------------------------------------------------------


async def close_browser(ctx: DiagnosticContext, toolkit: Toolkit) -> None:
    await toolkit.release_inspector()


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

Analyzer = Callable[[DiagnosticContext, Toolkit], Awaitable[None]]


class Phase(NamedTuple):
    number: int | None
    title: str
    keywords: tuple[str, ...]
    analyze: Analyzer
    acquires_inspector: bool = False

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)


PHASES: list[Phase] = [
    Phase(1, "Enable default rules", ("start", "initialize"), enable_default_rules, acquires_inspector=True),
    Phase(2, "Page load", ("page load", "login page"), analyze_page_loading),
    Phase(3, "Resources", ("images", "links", "resources"), analyze_resources),
    Phase(4, "WebSocket", ("websocket", "ws://"), analyze_websocket),
    Phase(5, "Redirects", ("redirect", "port"), analyze_redirects),
    Phase(6, "Network and console", ("network", "console", "error"), analyze_network_and_console),
    Phase(7, "Curl analysis", ("curl", "header"), perform_curl_analysis),
    Phase(None, "Finish", ("finish", "complete"), close_browser),
]


def resolve_phase(text: str) -> Phase | None:
    """First phase in PHASES whose keywords appear in `text`, or None."""
    for phase in PHASES:
        if phase.matches(text):
            return phase
    return None
