"""Chat session models exposed to the UI layer."""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from blockwise.models.edits import EditProposal


class SessionState(str, Enum):
    """States of the session controller."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    APPLYING_EDITS = "applying_edits"
    SUMMARIZING = "summarizing"
    CANCELLED = "cancelled"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class DocumentDiff(BaseModel):
    """Coarse end-of-session change summary."""

    original_content: str
    final_content: str
    lines_added: int = Field(..., ge=0)
    lines_removed: int = Field(..., ge=0)
    title: str = ""

    model_config = {"frozen": True}


class ChatMessage(BaseModel):
    """One turn of the conversation.

    Assistant messages are updated in place while streaming; everything
    else about a message is settled once streaming ends.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    role: MessageRole
    content: str = ""
    streaming: bool = False
    edits: list[EditProposal] = Field(default_factory=list)
    has_more: bool = False
    iteration: int = 1
    is_summary: bool = Field(
        default=False,
        description="Synthetic context summary or final session summary"
    )
    raw_content: Optional[str] = Field(
        default=None,
        description="Undecoded model output, used as the continuation token"
    )
    diff: Optional[DocumentDiff] = None
    session: int = Field(default=0, description="Session the message belongs to")
    cancelled: bool = False
