"""Edit proposals returned by the model."""

import uuid
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator

from blockwise.services.exceptions import EditStatusError


class EditAction(str, Enum):
    """Mutation requested by an edit."""

    REPLACE = "replace"
    DELETE = "delete"
    INSERT_AFTER = "insertAfter"
    MOVE_AFTER = "moveAfter"


class EditStatus(str, Enum):
    """Lifecycle of an edit proposal."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EditProposal(BaseModel):
    """One validated edit instruction.

    Proposals are immutable: accept() and reject() return a new proposal
    and are only allowed while the proposal is pending.
    """

    edit_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex[:12],
        description="Proposal identifier (local, not sent to the model)"
    )

    block_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("block_id", "blockId"),
        description="Target address (block ID or composite list-item address)"
    )

    action: EditAction = Field(..., description="Requested mutation")

    replace_with: str = Field(
        default="",
        validation_alias=AliasChoices("replace_with", "replaceWith"),
        description="Markdown content for replace/insertAfter"
    )

    target_block_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("target_block_id", "targetBlockId"),
        description="Anchor address (moveAfter only)"
    )

    description: str = Field(default="", description="Human-readable summary for display")

    status: EditStatus = Field(default=EditStatus.PENDING)

    failure_reason: Optional[str] = Field(
        default=None,
        description="Error code when automatic application failed"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="after")
    def check_move_target(self) -> "EditProposal":
        """moveAfter needs an anchor."""
        if self.action == EditAction.MOVE_AFTER and not self.target_block_id:
            raise ValueError("moveAfter edits require targetBlockId")
        return self

    def accept(self) -> "EditProposal":
        return self._transition(EditStatus.ACCEPTED)

    def reject(self) -> "EditProposal":
        return self._transition(EditStatus.REJECTED)

    def failed(self, reason: str) -> "EditProposal":
        """Record a failed application; the proposal stays pending."""
        if self.status != EditStatus.PENDING:
            raise EditStatusError(self.edit_id, self.status.value, EditStatus.PENDING.value)
        return self.model_copy(update={"failure_reason": reason})

    def _transition(self, status: EditStatus) -> "EditProposal":
        if self.status != EditStatus.PENDING:
            raise EditStatusError(self.edit_id, self.status.value, status.value)
        return self.model_copy(update={"status": status, "failure_reason": None})

    @property
    def is_final(self) -> bool:
        return self.status != EditStatus.PENDING
