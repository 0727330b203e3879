# rules.py
# Rule catalog for generated proxy rewrite rules.
#
# Placeholder tokens are opaque: they are written into rule values verbatim
# and resolved downstream by the proxy tooling, never here.

import re
from operator import attrgetter
from urllib.parse import urlsplit

from ot_debug.models import RewriteRule

DEVICE_EXTERNAL_FQDN = "{{DEVICE_EXTERNAL_FQDN}}"
DEVICE_INTERNAL_IP = "{{DEVICE_INTERNAL_IP}}"
DEVICE_IP = "{{DEVICE_IP}}"
DEVICE_HOSTNAME = "{{DEVICE_HOSTNAME}}"
DEVICE_REAL_IP = "{{DEVICE_REAL_IP}}"

_LEADING_ORIGIN_RE = re.compile(r"^https?://[^/]+")
_ORIGIN_RE = re.compile(r"https?://[^/]+")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def replace_leading_origin(value: str) -> str:
    """Swap a leading scheme://host[:port] for the external FQDN placeholder."""
    return _LEADING_ORIGIN_RE.sub(DEVICE_EXTERNAL_FQDN, value, count=1)


def replace_origin(value: str) -> str:
    """Swap the first scheme://host[:port] anywhere in `value`."""
    return _ORIGIN_RE.sub(DEVICE_EXTERNAL_FQDN, value, count=1)


def host_path_rule(url: str, description: str, priority: int) -> RewriteRule:
    """
    Body find/replace turning `host/path` into `{{FQDN}}/path`.

    URLs without a hostname (relative references) fall back to a prefix
    substitution against the raw string.
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        hostname = None

    if hostname:
        path = parts.path or "/"
        return RewriteRule(
            kind="body",
            action="find_replace",
            pattern=f"{hostname}{path}",
            replacement=f"{DEVICE_EXTERNAL_FQDN}{path}",
            description=description.format(target=path),
            priority=priority,
        )
    return RewriteRule(
        kind="body",
        action="find_replace",
        pattern=url,
        replacement=replace_leading_origin(url),
        description=description.format(target=url),
        priority=priority,
    )


def baseline_rules() -> list[RewriteRule]:
    """The four rules every session starts from, priorities 1-4."""
    return [
        RewriteRule(
            kind="default",
            action="enable",
            description="Enable default proxy rules - ALWAYS FIRST STEP",
            priority=1,
        ),
        RewriteRule(
            kind="header",
            action="add",
            header_name="X-Forwarded-Host",
            header_value=DEVICE_EXTERNAL_FQDN,
            description="Add forwarded host header for proper routing",
            priority=2,
        ),
        RewriteRule(
            kind="header",
            action="add",
            header_name="X-Forwarded-Proto",
            header_value="https",
            description="Add forwarded protocol header for HTTPS",
            priority=3,
        ),
        RewriteRule(
            kind="header",
            action="replace",
            header_name="Host",
            pattern=".*",
            replacement=DEVICE_INTERNAL_IP,
            description="Replace host header with device internal IP",
            priority=4,
        ),
    ]


# ---------------------------------------------------------------------------
# RuleCatalog
# ---------------------------------------------------------------------------


class RuleCatalog:
    """
    Growing, insertion-ordered sequence of rewrite rules.

    Never deduplicated. Ordering by priority happens only on read through
    sorted(), which is stable: equal priorities keep insertion order.
    """

    def __init__(self) -> None:
        self._rules: list[RewriteRule] = []

    def add(self, *rules: RewriteRule) -> None:
        self._rules.extend(rules)

    def sorted(self) -> list[RewriteRule]:
        return sorted(self._rules, key=attrgetter("priority"))

    def of_kind(self, kind: str) -> list[RewriteRule]:
        return [rule for rule in self.sorted() if rule.kind == kind]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(list(self._rules))
