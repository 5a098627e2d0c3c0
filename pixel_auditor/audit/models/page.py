"""Data models for retrieved pages and the scripts found on them."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class AuditModel(BaseModel):
    """Base model serialized with camelCase keys (``finalUrl``, ``hasScript``)."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
    }

    def to_dict(self) -> dict:
        """JSON-compatible dict using the public camelCase field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScriptType(str, Enum):
    """Where a script's code lives."""
    INLINE = "inline"
    EXTERNAL = "external"


class ExternalScriptRef(AuditModel):
    """A ``<script src=...>`` reference exactly as written in the HTML."""

    src: str = Field(description="Raw src attribute, possibly relative")


class ScriptRefs(AuditModel):
    """Scripts found in the raw HTML, in document order."""

    inline: List[str] = Field(
        default_factory=list,
        description="Inline script bodies (blank bodies are skipped)"
    )
    external: List[ExternalScriptRef] = Field(
        default_factory=list,
        description="External script references"
    )


class PageContent(AuditModel):
    """A retrieved page. Produced once per audit and never modified."""

    model_config = {"frozen": True}

    html: str = Field(default="", description="Raw HTML body")
    scripts: ScriptRefs = Field(default_factory=ScriptRefs)
    final_url: str = Field(description="URL after following redirects")
    status: int = Field(default=0, description="HTTP status of the page response (0 = not fetched)")
    content_type: Optional[str] = Field(default=None, description="Response Content-Type header")
    blocked: Optional[str] = Field(
        default=None,
        description="Bot-wall / challenge hint, informational only"
    )


class ScriptRecord(AuditModel):
    """The working unit handed to every detector."""

    type: ScriptType
    content: str = Field(default="", description="Script source text, empty until fetched")
    src: Optional[str] = Field(default=None, description="Script URL for external scripts")
    line: int = Field(default=0, description="Informational position in the page")
    exclude_from_events: bool = Field(
        default=False,
        description="Third-party payload: detectable for installs, not mined for events"
    )

    @property
    def is_external(self) -> bool:
        return self.type == ScriptType.EXTERNAL


class FetchedScript(AuditModel):
    """An external script body downloaded by the resolver (report detail view)."""

    src: str = Field(description="Absolute script URL")
    content: str = ""
    exclude_from_events: bool = False
    injected: bool = Field(
        default=False,
        description="True for GTM containers added by id rather than found in the HTML"
    )
