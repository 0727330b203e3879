# harness.py
# OT Device Debug Session
#
# The session is the kernel. It owns the diagnostic context and the thought
# ledger outright; the caller only ever submits steps and reads responses.
#
# Control flow per step:
#   validate → total-steps correction → ledger → target discovery
#   → phase resolution → phase analyzer → response (+ report on last step)
#
# Steps are processed one at a time. There is no internal lock: callers
# must serialize submissions. All terminal output is delegated to display.py.

import logging
from typing import Any, Callable

from pydantic import ValidationError

from ot_debug import classify, display
from ot_debug.config import Settings
from ot_debug.context import DiagnosticContext
from ot_debug.errors import CollaboratorError, DispatchError, StepValidationError
from ot_debug.inspector import PageInspector, PlaywrightInspector
from ot_debug.ledger import ThoughtLedger
from ot_debug.models import Step, ToolResponse
from ot_debug.phases import Toolkit, resolve_phase
from ot_debug.prober import HeaderProber
from ot_debug.report import build_report

logger = logging.getLogger(__name__)

_FIELD_ERRORS = {
    "thought": "Invalid thought: must be a non-empty string",
    "thoughtNumber": "Invalid thoughtNumber: must be a number",
    "totalThoughts": "Invalid totalThoughts: must be a number",
    "nextThoughtNeeded": "Invalid nextThoughtNeeded: must be a boolean",
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_step(data: Any) -> Step:
    """
    Build a Step from raw submitted arguments.
    Raises StepValidationError naming the first offending field.
    """
    if not isinstance(data, dict):
        raise StepValidationError("Invalid step: must be an object")

    try:
        return Step.model_validate(data)
    except ValidationError as exc:
        field = exc.errors()[0]["loc"][0]
        raise StepValidationError(_FIELD_ERRORS.get(field, f"Invalid {field}")) from exc


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class DebugSession:
    """
    One diagnostic session against one legacy device.

    Example:
        session = DebugSession()
        response = await session.submit({
            "thought": "Start debugging http://192.168.1.100:8080",
            "thoughtNumber": 1,
            "totalThoughts": 8,
            "nextThoughtNeeded": True,
        })
    """

    def __init__(
        self,
        settings: Settings | None = None,
        prober: HeaderProber | None = None,
        inspector_factory: Callable[[], PageInspector] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.context = DiagnosticContext()
        self.ledger = ThoughtLedger()
        self.toolkit = Toolkit(
            self.settings,
            prober or HeaderProber(timeout_s=self.settings.probe_timeout_s),
            inspector_factory or self._default_inspector,
        )

    def _default_inspector(self) -> PageInspector:
        return PlaywrightInspector(
            headless=self.settings.headless,
            user_agent=self.settings.user_agent,
            default_timeout_ms=self.settings.navigation_timeout_ms,
        )

    @property
    def _echo(self) -> bool:
        return not self.settings.disable_thought_logging

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def submit(self, data: Any) -> ToolResponse:
        """
        Process one step. Returns a ToolResponse in all cases. Malformed
        input and phase failures come back as error payloads, never raised.
        Mutations made before a failure are kept.
        """
        try:
            return await self._process(data)
        except StepValidationError as exc:
            logger.warning("Rejected step: %s", exc)
            return self._failure(exc, "ValidationError")
        except DispatchError as exc:
            logger.error("Step dispatch failed: %s", exc, exc_info=exc.__cause__)
            return self._failure(exc, "DispatchError")

    async def close(self) -> None:
        await self.toolkit.release_inspector()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _process(self, data: Any) -> ToolResponse:
        step = validate_step(data)
        try:
            return await self._dispatch(step)
        except Exception as exc:
            raise DispatchError(str(exc)) from exc

    async def _dispatch(self, step: Step) -> ToolResponse:
        if step.thought_number > step.total_thoughts:
            step = step.model_copy(update={"total_thoughts": step.thought_number})

        self.ledger.append(step)
        if self._echo:
            display.step_logged(step)

        url = classify.find_url(step.thought)
        if url:
            self.context.set_target(url)

        phase = resolve_phase(step.thought)
        if phase is not None:
            logger.info("Step %s → %s", step.thought_number, phase.title)
            if self._echo:
                display.phase_started(phase.number, phase.title)

            if phase.acquires_inspector:
                try:
                    await self.toolkit.acquire_inspector(self.context)
                except CollaboratorError as exc:
                    logger.warning("Browser initialization failed: %s", exc)
                    self.context.add_issue(f"Browser initialization failed: {exc}")

            await phase.analyze(self.context, self.toolkit)

        payload = self._summary(step)
        if not step.next_thought_needed:
            report = build_report(self.context, steps_completed=len(self.ledger))
            payload["fullReport"] = report
            if self._echo:
                display.report_summary(report["summary"])

        return ToolResponse(payload=payload)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _summary(self, step: Step) -> dict:
        ctx = self.context
        return {
            "thoughtNumber": step.thought_number,
            "totalThoughts": step.total_thoughts,
            "nextThoughtNeeded": step.next_thought_needed,
            "currentStep": ctx.current_step,
            "deviceUrl": ctx.device_url,
            "pageLoadStatus": ctx.page_load_status.value,
            "issuesFound": len(ctx.issues),
            "rewriteRules": len(ctx.rules),
            "networkRequests": len(ctx.network_requests),
            "consoleErrors": len(ctx.console_errors),
            "brokenImages": len(ctx.broken_images),
            "brokenLinks": len(ctx.broken_links),
            "redirects": len(ctx.redirects),
            "branches": self.ledger.branch_ids,
            "thoughtHistoryLength": len(self.ledger),
        }

    def _failure(self, exc: Exception, category: str) -> ToolResponse:
        if self._echo:
            display.submission_failed(str(exc))
        return ToolResponse(
            payload={"error": str(exc), "status": "failed", "errorType": category},
            is_error=True,
        )
