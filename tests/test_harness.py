import asyncio

import pytest

from conftest import DEVICE_URL, FakeInspector
from ot_debug.errors import CollaboratorError, DispatchError, StepValidationError
from ot_debug.harness import DebugSession, validate_step
from ot_debug.inspector import PAGE_CONTENT_PROBE, WEBSOCKET_PROBE
from ot_debug.models import ProbeResult


def _step(thought, number=1, total=3, more=True, **extra):
    data = {
        "thought": thought,
        "thoughtNumber": number,
        "totalThoughts": total,
        "nextThoughtNeeded": more,
    }
    data.update(extra)
    return data


def submit(session, data):
    return asyncio.run(session.submit(data))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_validate_step_reads_camel_case_fields():
    step = validate_step(_step("check redirects", number=2, total=5, branchId="alt", branchFromThought=1))
    assert step.thought == "check redirects"
    assert step.thought_number == 2
    assert step.total_thoughts == 5
    assert step.next_thought_needed is True
    assert step.is_branch


@pytest.mark.parametrize(
    "data, message",
    [
        ({"thoughtNumber": 1, "totalThoughts": 1, "nextThoughtNeeded": True}, "Invalid thought"),
        (_step(42), "Invalid thought"),
        (_step(""), "Invalid thought"),
        (_step("x", number="1"), "Invalid thoughtNumber"),
        (_step("x", total=None), "Invalid totalThoughts"),
        (_step("x", number=True), "Invalid thoughtNumber"),
        (_step("x", total=False), "Invalid totalThoughts"),
        (_step("x", more="yes"), "Invalid nextThoughtNeeded"),
        (_step("x", more=1), "Invalid nextThoughtNeeded"),
    ],
)
def test_validate_step_rejects_malformed_input(data, message):
    with pytest.raises(StepValidationError, match=message):
        validate_step(data)


def test_validate_step_rejects_non_object():
    with pytest.raises(StepValidationError, match="must be an object"):
        validate_step(["start"])


@pytest.mark.parametrize("number", [2, 2.0, 1.5])
def test_validate_step_accepts_any_json_number(number):
    step = validate_step(_step("x", number=number, total=4.0))
    assert step.thought_number == number
    assert step.total_thoughts == 4.0


def test_fractional_step_number_is_ledgered(session):
    response = submit(session, _step("note", number=2.5, total=2))

    assert response.is_error is False
    assert response.payload["thoughtNumber"] == 2.5
    assert response.payload["totalThoughts"] == 2.5
    assert len(session.ledger) == 1


def test_optional_markers_pass_through_unchecked():
    step = validate_step(_step("x", revisesThought="two", isRevision="maybe"))
    assert step.revises_thought == "two"
    assert step.is_revision == "maybe"


# ---------------------------------------------------------------------------
# Ledger and target discovery
# ---------------------------------------------------------------------------


def test_start_step_sets_target_and_seeds_baseline_rules(session, inspector):
    response = submit(session, _step(f"start debugging {DEVICE_URL}"))

    assert response.is_error is False
    assert response.payload["deviceUrl"] == DEVICE_URL
    assert response.payload["rewriteRules"] == 4
    assert response.payload["currentStep"] == "Step 1: Enable Default Rules"
    assert inspector.opened == 1
    assert inspector.sink is session.context


def test_each_valid_step_extends_ledger_by_one(session):
    for number, thought in enumerate(["note one", "note two", "note three"], start=1):
        before = len(session.ledger)
        submit(session, _step(thought, number=number))
        assert len(session.ledger) == before + 1


def test_total_thoughts_raised_to_step_number(session):
    response = submit(session, _step("thinking", number=5, total=3))
    assert response.payload["totalThoughts"] == 5
    assert session.ledger.steps[-1].total_thoughts == 5

    response = submit(session, _step("thinking again", number=2, total=4))
    assert response.payload["totalThoughts"] == 4


def test_target_is_immutable_after_first_url(session):
    submit(session, _step(f"looking at {DEVICE_URL}"))
    submit(session, _step("now try https://10.0.0.9/other", number=2))

    assert session.context.device_url == DEVICE_URL
    assert session.context.device_hostname == "192.168.1.100"


def test_branch_steps_are_indexed(session):
    submit(session, _step("first hypothesis"))
    submit(session, _step("alternative", number=2, branchFromThought=1, branchId="b1"))
    response = submit(session, _step("mainline", number=3))

    assert response.payload["branches"] == ["b1"]
    assert [s.thought for s in session.ledger.branch("b1")] == ["alternative"]
    assert response.payload["thoughtHistoryLength"] == 3


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_unmatched_step_runs_no_phase(session):
    response = submit(session, _step("thinking about the weather"))
    assert response.payload["currentStep"] == ""
    assert response.payload["rewriteRules"] == 0
    assert len(session.ledger) == 1


def test_first_matching_phase_wins(session, inspector, prober):
    submit(session, _step(f"start {DEVICE_URL}"))
    inspector.probes[WEBSOCKET_PROBE] = True

    response = submit(session, _step("check websocket then curl", number=2))

    assert response.payload["currentStep"] == "Step 4: Analyze WebSocket Connections"
    assert response.payload["rewriteRules"] == 8
    prober.probe.assert_not_awaited()


def test_curl_step_uses_prober(session, prober):
    prober.probe.return_value = ProbeResult(status=200, status_text="OK")
    submit(session, _step(f"initialize {DEVICE_URL}"))
    submit(session, _step("perform curl analysis", number=2))

    prober.probe.assert_awaited_once_with(DEVICE_URL)
    assert "CURL ANALYSIS: HTTP 200 OK" in session.context.issues


def test_finish_closes_browser_and_start_reopens(session, inspector):
    submit(session, _step(f"start {DEVICE_URL}"))
    issues = len(session.context.issues)
    rules = len(session.context.rules)

    submit(session, _step("finish the session", number=2))
    assert inspector.closed == 1
    assert session.toolkit.inspector is None
    assert len(session.context.issues) == issues
    assert len(session.context.rules) == rules

    submit(session, _step("start again", number=3))
    assert inspector.opened == 2
    # Default rules are only seeded once.
    assert len(session.context.rules) == 4


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_malformed_step_returns_error_payload(session):
    response = submit(session, {"thoughtNumber": 1, "totalThoughts": 1, "nextThoughtNeeded": True})

    assert response.is_error is True
    assert response.payload["status"] == "failed"
    assert response.payload["errorType"] == "ValidationError"
    assert "thought" in response.payload["error"]
    assert len(session.ledger) == 0


def test_phase_failure_keeps_partial_progress(session, inspector):
    submit(session, _step(f"start {DEVICE_URL}"))
    inspector.probes[PAGE_CONTENT_PROBE] = "not a dict"

    response = submit(session, _step("check page load", number=2))

    assert response.is_error is True
    assert response.payload["errorType"] == "DispatchError"
    assert session.context.current_step == "Step 2: Analyze Page Loading Status"
    assert len(session.ledger) == 2


def test_phase_failure_is_wrapped_as_dispatch_error(session, inspector):
    submit(session, _step(f"start {DEVICE_URL}"))
    inspector.probes[PAGE_CONTENT_PROBE] = RuntimeError("renderer gone")

    with pytest.raises(DispatchError, match="renderer gone") as excinfo:
        asyncio.run(session._process(_step("check page load", number=2)))
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_browser_launch_failure_is_recorded(settings, prober):
    broken = FakeInspector()

    async def fail_open(sink):
        raise CollaboratorError("no chromium")

    broken.open = fail_open
    session = DebugSession(settings=settings, prober=prober, inspector_factory=lambda: broken)

    response = submit(session, _step(f"start {DEVICE_URL}"))

    assert response.is_error is False
    assert "Browser initialization failed: no chromium" in session.context.issues
    assert response.payload["rewriteRules"] == 4


# ---------------------------------------------------------------------------
# Final report
# ---------------------------------------------------------------------------


def test_last_step_attaches_full_report(session, inspector):
    inspector.probes[WEBSOCKET_PROBE] = True
    submit(session, _step(f"start {DEVICE_URL}"))
    submit(session, _step("check websocket", number=2))
    response = submit(session, _step("generate final report", number=3, more=False))

    report = response.payload["fullReport"]
    rules = report["rewriteRulesForRAPortal"]
    assert rules["totalRules"] == len(session.context.rules)

    partitions = rules["defaultRules"] + rules["headerRewrites"] + rules["bodyRewrites"]
    assert len(partitions) == rules["totalRules"]
    assert {r["type"] for r in rules["defaultRules"]} == {"default"}
    assert {r["type"] for r in rules["headerRewrites"]} == {"header"}
    assert {r["type"] for r in rules["bodyRewrites"]} == {"body"}
    assert report["summary"]["stepsCompleted"] == 3


def test_intermediate_steps_have_no_report(session):
    response = submit(session, _step("still going"))
    assert "fullReport" not in response.payload
