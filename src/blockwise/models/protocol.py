"""Request, response and stream event models for the model transport."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from blockwise.models.edits import EditProposal


class SessionMode(str, Enum):
    """How the model is asked to respond."""

    AGENT = "agent"  # Structured JSON with edits
    ASK = "ask"  # Plain answer, never edits


class HistoryEntry(BaseModel):
    """One prior chat turn sent back to the model."""

    role: Literal["user", "assistant"]
    content: str

    model_config = {"frozen": True}


class AgentRequest(BaseModel):
    """Everything the transport needs to build one model call."""

    message: str = Field(..., description="User request for this session")
    document_context: str = Field(..., description="Address-annotated document text")
    document_title: str = Field(default="", description="Title shown to the model")
    history: list[HistoryEntry] = Field(default_factory=list)
    context_summary: Optional[str] = Field(
        default=None,
        description="Compacted memory replacing older history"
    )
    continue_from: Optional[str] = Field(
        default=None,
        description="Previous turn's output when continuing unfinished work"
    )
    iteration: int = Field(default=1, ge=1)
    max_edits_per_iteration: int = Field(default=12, ge=1)
    mode: SessionMode = Field(default=SessionMode.AGENT)

    model_config = {"frozen": True}


class ValidResponse(BaseModel):
    """Response decoded into text, edits and a continuation flag."""

    kind: Literal["valid"] = "valid"
    response: str = ""
    edits: list[EditProposal] = Field(default_factory=list)
    has_more: bool = False
    recovered: bool = Field(
        default=False,
        description="True when produced by escape repair or partial extraction"
    )

    model_config = {"frozen": True}


class MalformedResponse(BaseModel):
    """Model output that could not be decoded; shown to the user verbatim."""

    kind: Literal["malformed"] = "malformed"
    raw: str
    error: str = ""

    model_config = {"frozen": True}

    @property
    def response(self) -> str:
        return self.raw

    @property
    def edits(self) -> list[EditProposal]:
        return []

    @property
    def has_more(self) -> bool:
        return False


ParsedResponse = Annotated[
    Union[ValidResponse, MalformedResponse],
    Field(discriminator="kind"),
]


class ChunkEvent(BaseModel):
    """Incremental text from the model."""

    type: Literal["chunk"] = "chunk"
    content: str


class CompleteEvent(BaseModel):
    """End of stream with the decoded response."""

    type: Literal["complete"] = "complete"
    result: ParsedResponse
    raw_content: str = ""


class ErrorEvent(BaseModel):
    """Transport failure reported in-band."""

    type: Literal["error"] = "error"
    message: str
    retryable: bool = True


StreamEvent = Annotated[
    Union[ChunkEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]
