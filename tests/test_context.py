from conftest import DEVICE_URL
from ot_debug.context import DiagnosticContext
from ot_debug.ledger import ThoughtLedger
from ot_debug.models import PageLoadStatus, Step


def test_new_context_is_empty():
    ctx = DiagnosticContext()
    assert ctx.device_url == ""
    assert ctx.page_load_status is PageLoadStatus.UNSET
    assert len(ctx.rules) == 0
    assert ctx.issues == []


def test_set_target_only_once():
    ctx = DiagnosticContext()
    assert ctx.set_target("https://plc.plant.local:8443/ui") is True
    assert ctx.set_target(DEVICE_URL) is False

    assert ctx.device_url == "https://plc.plant.local:8443/ui"
    assert ctx.device_ip == "plc.plant.local"
    assert ctx.device_hostname == "plc.plant.local"


# ---------------------------------------------------------------------------
# Inspector event folding
# ---------------------------------------------------------------------------


def test_request_classification_at_record_time(ctx):
    obs = ctx.record_request("http://192.168.1.100:8080/private-api/v1", "GET", {"accept": "*/*"})
    assert obs.is_device_ip is True
    assert obs.is_private_api is True
    assert obs.status is None


def test_response_attaches_to_first_pending_request(ctx):
    first = ctx.record_request(DEVICE_URL, "GET", {})
    second = ctx.record_request(DEVICE_URL, "GET", {})

    ctx.record_response(DEVICE_URL, 404, {"content-type": "text/html"})
    ctx.record_response(DEVICE_URL, 200, {})

    assert (first.status, first.error) == (404, "HTTP 404")
    assert first.response_headers == {"content-type": "text/html"}
    assert (second.status, second.error) == (200, None)


def test_response_without_request_is_ignored(ctx):
    assert ctx.record_response("http://elsewhere/", 200, {}) is None
    assert ctx.network_requests == []


def test_console_retention(ctx):
    assert ctx.record_console("log", "all good") is None
    assert ctx.record_console("warning", "Resource interpreted with MIME type text/html").is_mime_type
    assert ctx.record_console("info", "loading bootstrap.js").is_bootstrap_js
    error = ctx.record_console("error", "boom", url="http://x/a.js", line_number=3)

    assert error.line_number == 3
    assert len(ctx.console_errors) == 3


# ---------------------------------------------------------------------------
# Thought ledger
# ---------------------------------------------------------------------------


def _ledger_step(number, **extra):
    return Step(thought=f"step {number}", thought_number=number, total_thoughts=5, next_thought_needed=True, **extra)


def test_ledger_branches_reference_ledgered_steps():
    ledger = ThoughtLedger()
    ledger.append(_ledger_step(1))
    ledger.append(_ledger_step(2, branch_from_thought=1, branch_id="alt"))
    ledger.append(_ledger_step(3, branch_from_thought=1))
    ledger.append(_ledger_step(4, branch_from_thought=2, branch_id="alt"))

    assert len(ledger) == 4
    assert ledger.branch_ids == ["alt"]
    assert [s.thought_number for s in ledger.branch("alt")] == [2, 4]
    assert ledger.branch("alt")[0] is ledger.steps[1]
    assert ledger.branch("missing") == []


def test_ledger_revision_lookup():
    ledger = ThoughtLedger()
    ledger.append(_ledger_step(1))
    ledger.append(_ledger_step(2, is_revision=True, revises_thought=1))

    assert [s.thought_number for s in ledger.revisions_of(1)] == [2]
