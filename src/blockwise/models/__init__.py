"""Pydantic data models for Blockwise."""

# Import models in dependency order to resolve forward references
from blockwise.models.edits import EditProposal
from blockwise.models.protocol import CompleteEvent, ValidResponse
from blockwise.models.session import ChatMessage

# Rebuild models that embed EditProposal now that it is defined
ValidResponse.model_rebuild()
CompleteEvent.model_rebuild()
ChatMessage.model_rebuild()
