# inspector.py
# Page inspector capability: browser automation behind a narrow interface.
#
# Phase analyzers only see PageInspector. PlaywrightInspector is the real
# implementation; tests substitute an in-memory fake.

import logging
from typing import Any, Protocol

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, async_playwright

from ot_debug.context import DiagnosticContext
from ot_debug.errors import CollaboratorError
from ot_debug.models import NavigationResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DOM probes
# ---------------------------------------------------------------------------

PAGE_CONTENT_PROBE = """\
() => ({
  hasBody: !!document.body,
  bodyLength: document.body ? document.body.innerHTML.length : 0,
  hasLoginForm: !!(document.querySelector('input[type="password"]') ||
                   document.querySelector('[name="username"]') ||
                   document.querySelector('[name="password"]') ||
                   document.querySelector('.login') ||
                   document.querySelector('#login')),
  pageTitle: document.title,
  hasTryAgainMessage: !!(document.body &&
                         (document.body.textContent || '').toLowerCase().includes('try again'))
})"""

RESOURCE_PROBE = """\
() => {
  const images = Array.from(document.querySelectorAll('img'));
  return {
    brokenImages: images.filter(img => !img.complete || img.naturalWidth === 0).map(img => img.src),
    allImages: images.map(img => img.src).filter(src => src),
    links: Array.from(document.querySelectorAll('a[href]')).map(a => a.href).filter(h => h),
    scriptSources: Array.from(document.querySelectorAll('script[src]')).map(s => s.src).filter(s => s),
    stylesheetSources: Array.from(document.querySelectorAll('link[rel="stylesheet"]'))
      .map(l => l.href).filter(h => h)
  };
}"""

WEBSOCKET_PROBE = """\
() => {
  const html = document.documentElement.innerHTML;
  return html.includes('WebSocket') || html.includes('ws://') || html.includes('wss://');
}"""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class PageInspector(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def open(self, sink: DiagnosticContext) -> None: ...

    async def navigate(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout_ms: int | None = None,
    ) -> NavigationResult | None: ...

    async def evaluate(self, probe: str) -> Any: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Playwright implementation
# ---------------------------------------------------------------------------


class PlaywrightInspector:
    """
    Lazily launched headless Chromium with a single page.

    Request, response and console events are folded into the sink context
    in arrival order. close() tears everything down; a later open() starts
    a fresh browser.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str | None = None,
        default_timeout_ms: int = 30_000,
    ) -> None:
        self._headless = headless
        self._user_agent = user_agent
        self._default_timeout_ms = default_timeout_ms

        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    async def open(self, sink: DiagnosticContext) -> None:
        if self._page is not None:
            return

        try:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless,
                    args=["--ignore-certificate-errors", "--ignore-ssl-errors"],
                )
            self._context = await self._browser.new_context(
                ignore_https_errors=True,
                user_agent=self._user_agent,
            )
            page = await self._context.new_page()
        except PlaywrightError as exc:
            raise CollaboratorError(f"Browser launch failed: {exc}") from exc

        def on_request(request) -> None:
            sink.record_request(request.url, request.method, request.headers)

        def on_response(response) -> None:
            sink.record_response(response.url, response.status, response.headers)

        def on_console(message) -> None:
            location = message.location or {}
            sink.record_console(
                message.type,
                message.text,
                url=location.get("url"),
                line_number=location.get("lineNumber"),
            )

        page.on("request", on_request)
        page.on("response", on_response)
        page.on("console", on_console)
        self._page = page
        logger.info("Browser page opened")

    async def navigate(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout_ms: int | None = None,
    ) -> NavigationResult | None:
        page = self._require_page()
        timeout = timeout_ms if timeout_ms is not None else self._default_timeout_ms
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightError as exc:
            raise CollaboratorError(str(exc)) from exc

        if response is None:
            return None
        return NavigationResult(status=response.status, final_url=response.url)

    async def evaluate(self, probe: str) -> Any:
        page = self._require_page()
        try:
            return await page.evaluate(probe)
        except PlaywrightError as exc:
            raise CollaboratorError(str(exc)) from exc

    async def close(self) -> None:
        """Release every handle. A failing close is logged and the rest still run."""
        handles = [
            ("page", self._page, "close"),
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("driver", self._playwright, "stop"),
        ]
        self._page = self._context = self._browser = self._playwright = None

        for name, handle, method in handles:
            if handle is None:
                continue
            try:
                await getattr(handle, method)()
            except PlaywrightError as exc:
                logger.warning("Closing browser %s failed: %s", name, exc)
        logger.info("Browser closed")

    def _require_page(self) -> Page:
        if self._page is None:
            raise CollaboratorError("Browser page is not open.")
        return self._page
