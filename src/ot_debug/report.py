# report.py
# Final report: a read-only reduction of the diagnostic context.
#
# Deterministic: the same context always yields the same report. The
# checklists at the bottom are static guidance, not derived from the session.

from ot_debug.context import DiagnosticContext

WORKFLOW_LABEL = "OT Production Workflow - 7 Steps Completed"
PRIORITY_ORDER_NOTE = "Apply rules in priority order (1 = highest priority)"

IMMEDIATE_ACTIONS = [
    "1. FIRST: Apply generated rewrite rules to RA portal device configuration in priority order",
    "2. Test device access via RA portal after applying rules",
    "3. If page shows 'Try again' error: Apply all header and body rewrite rules",
    "4. If Error 400 hostname invalid: Ensure Host header rewrite is applied",
    "5. If bootstrap.js errors: Apply https→spdy replacement rule (DSD-3756 fix)",
    "6. If MIME type errors: Apply Content-Type header rules",
    "7. If private API calls detected: Enable JSON body rewrite",
    "8. If redirect issues: Consider onboarding with suggested port",
]

TROUBLESHOOTING_STEPS = [
    "1. Enable default rules (completed automatically)",
    "2. Look for network failure and console errors (completed)",
    "3. Check using curl analysis (completed)",
    "4. If issues persist: Access device directly via jbox browser",
    "5. Deploy browser service (iotium/qa padma-firefox) on iNode for local testing",
    "6. Onboard browser as HTTP device on port 5800 for local access",
    "7. Use F12 developer tools to analyze request/response in jbox browser",
]

ESCALATION_PATH = [
    "1. If login still fails after applying rules: Create Alpha weblink DOSD ticket",
    "2. Tag issue as 'proxy-aware' in JIRA for future reference",
    "3. If complex issues found: Get DevOps team involvement",
    "4. Check previous history: https://neeve.atlassian.net/issues/?jql=labels%20%3D%20proxy-aware%20ORDER%20BY%20created%20DESC",
]

CUSTOMER_REQUIREMENTS = [
    "1. Obtain temporary access credentials to the device",
    "2. Get any fixed hostname assigned to the device",
    "3. Understand how customer accesses device directly within network",
    "4. Get device firmware/software version information",
    "5. Determine if recent device upgrade caused the issue",
]

COMMON_OT_DEVICE_PORTS = {
    "443": "HTTPS - most common for secure devices",
    "8443": "Alternative HTTPS port",
    "8501": "Common for industrial devices",
    "8080": "HTTP alternative",
    "80": "Standard HTTP",
    "note": "If redirects detected, try onboarding with the redirect port",
}


def build_report(ctx: DiagnosticContext, steps_completed: int) -> dict:
    """Reduce `ctx` into the final report. Never mutates the context."""
    rules = ctx.rules.sorted()
    requests = ctx.network_requests
    console = ctx.console_errors
    private_calls = sum(1 for r in requests if r.is_private_api)

    return {
        "summary": {
            "deviceUrl": ctx.device_url,
            "deviceIP": ctx.device_ip,
            "deviceHostname": ctx.device_hostname,
            "pageLoadStatus": ctx.page_load_status.value,
            "finalUrl": ctx.final_url,
            "pageTitle": ctx.page_title,
            "totalIssues": len(ctx.issues),
            "totalRules": len(rules),
            "stepsCompleted": steps_completed,
            "debuggingWorkflow": WORKFLOW_LABEL,
        },
        "issuesFound": list(ctx.issues),
        "rewriteRulesForRAPortal": {
            "defaultRules": [r.to_wire() for r in rules if r.kind == "default"],
            "headerRewrites": [r.to_wire() for r in rules if r.kind == "header"],
            "bodyRewrites": [r.to_wire() for r in rules if r.kind == "body"],
            "totalRules": len(rules),
            "priorityOrder": PRIORITY_ORDER_NOTE,
        },
        "networkAnalysis": {
            "totalRequests": len(requests),
            "errors404": sum(1 for r in requests if r.status == 404),
            "errors500": sum(1 for r in requests if r.status == 500),
            "privateAPICalls": private_calls,
            "deviceIPRequests": sum(1 for r in requests if r.is_device_ip),
            "recommendJSONBodyRewrite": private_calls > 0,
        },
        "consoleAnalysis": {
            "totalErrors": len(console),
            "mimeTypeErrors": sum(1 for e in console if e.is_mime_type),
            "bootstrapJSErrors": sum(1 for e in console if e.is_bootstrap_js),
            "websocketErrors": sum(1 for e in console if "websocket" in e.message.lower()),
        },
        "resourceAnalysis": {
            "totalImages": ctx.total_images,
            "brokenImages": len(ctx.broken_images),
            "brokenLinks": len(ctx.broken_links),
            "redirectsDetected": len(ctx.redirects),
        },
        "curlAnalysis": ctx.curl_results.to_wire() if ctx.curl_results else None,
        "otSpecificFindings": {
            "hostnameRequirement": ctx.issue_mentions("hostname"),
            "realIPRequirement": ctx.issue_mentions("Real IP"),
            "bootstrapJSIssue": ctx.issue_mentions("bootstrap.js"),
            "mimeTypeIssue": ctx.issue_mentions("MIME type"),
            "redirectIssue": ctx.issue_mentions("redirect"),
            "tryAgainError": ctx.issue_mentions("Try again"),
            "error400Hostname": ctx.issue_mentions("400 hostname"),
        },
        "immediateActions": list(IMMEDIATE_ACTIONS),
        "troubleshootingSteps": list(TROUBLESHOOTING_STEPS),
        "escalationPath": list(ESCALATION_PATH),
        "customerRequirements": list(CUSTOMER_REQUIREMENTS),
        "commonOTDevicePorts": dict(COMMON_OT_DEVICE_PORTS),
    }
