# models.py
# Data contracts for the OT device debug session.
# No business logic lives here: pure schema and validation.

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt


class _WireModel(BaseModel):
    """Base for records that travel as camelCase JSON."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class Step(_WireModel):
    """A single operator-submitted debugging step. Immutable once ledgered."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    thought: str = Field(..., strict=True, min_length=1)
    # Any JSON number; bools and numeric strings are rejected.
    thought_number: StrictInt | StrictFloat = Field(..., alias="thoughtNumber")
    total_thoughts: StrictInt | StrictFloat = Field(..., alias="totalThoughts")
    next_thought_needed: bool = Field(..., alias="nextThoughtNeeded", strict=True)

    # Markers are carried through as submitted, without type checks.
    is_revision: Any = Field(default=None, alias="isRevision")
    revises_thought: Any = Field(default=None, alias="revisesThought")
    branch_from_thought: Any = Field(default=None, alias="branchFromThought")
    branch_id: Any = Field(default=None, alias="branchId")
    needs_more_thoughts: Any = Field(default=None, alias="needsMoreThoughts")

    @property
    def is_branch(self) -> bool:
        return bool(self.branch_from_thought) and bool(self.branch_id)


# ---------------------------------------------------------------------------
# Rewrite rules
# ---------------------------------------------------------------------------


RuleKind = Literal["header", "body", "default"]
RuleAction = Literal["find_replace", "add", "replace", "remove", "append", "enable"]


class RewriteRule(_WireModel):
    """One declarative proxy rewrite instruction. Lower priority applies first."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: RuleKind = Field(..., alias="type")
    action: RuleAction
    pattern: str | None = None
    replacement: str | None = None
    header_name: str | None = Field(default=None, alias="headerName")
    header_value: str | None = Field(default=None, alias="headerValue")
    path: str | None = None
    condition: str | None = None
    description: str
    priority: int


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------


class NetworkObservation(_WireModel):
    """A request seen by the page inspector, completed when its response arrives."""

    url: str
    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    status: int | None = None
    response_headers: dict[str, str] | None = Field(default=None, alias="responseHeaders")
    body: str | None = None
    is_private_api: bool = Field(default=False, alias="isPrivateAPI")
    is_device_ip: bool = Field(default=False, alias="isDeviceIP")
    error: str | None = None


class ConsoleObservation(_WireModel):
    """A retained console message from the page inspector."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    message: str
    url: str | None = None
    line_number: int | None = Field(default=None, alias="lineNumber")
    is_mime_type: bool = Field(default=False, alias="isMimeType")
    is_bootstrap_js: bool = Field(default=False, alias="isBootstrapJS")


class PageLoadStatus(str, Enum):
    UNSET = ""
    NOT_LOADED = "not_loaded"
    PARTIALLY_LOADED = "partially_loaded"
    FULLY_LOADED = "fully_loaded"


# ---------------------------------------------------------------------------
# Collaborator results
# ---------------------------------------------------------------------------


class NavigationResult(BaseModel):
    status: int
    final_url: str


class PageContent(_WireModel):
    """DOM facts gathered after navigation."""

    has_body: bool = Field(default=False, alias="hasBody")
    body_length: int = Field(default=0, alias="bodyLength")
    has_login_form: bool = Field(default=False, alias="hasLoginForm")
    page_title: str = Field(default="", alias="pageTitle")
    has_try_again_message: bool = Field(default=False, alias="hasTryAgainMessage")


class ResourceInventory(_WireModel):
    """Resource references found in the loaded DOM."""

    broken_images: list[str] = Field(default_factory=list, alias="brokenImages")
    all_images: list[str] = Field(default_factory=list, alias="allImages")
    links: list[str] = Field(default_factory=list)
    script_sources: list[str] = Field(default_factory=list, alias="scriptSources")
    stylesheet_sources: list[str] = Field(default_factory=list, alias="stylesheetSources")


class ProbeResult(_WireModel):
    """Outcome of a single HEAD probe. Header names are lower-case."""

    status: int
    status_text: str = Field(default="", alias="statusText")
    headers: dict[str, str] = Field(default_factory=dict)
    url: str = ""


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ToolResponse(BaseModel):
    """Structured result of one step submission. Never an exception."""

    payload: dict
    is_error: bool = False
