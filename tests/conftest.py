"""Shared test fixtures for all test modules."""

import json

import pytest
from structlog.testing import capture_logs
from richtext_tree import Document, Node, NodeType

from blockwise.models.config import AgentConfig
from blockwise.models.protocol import ChunkEvent, CompleteEvent, ErrorEvent
from blockwise.services.exceptions import TransportError
from blockwise.services.response_parser import parse_agent_response


@pytest.fixture(autouse=True)
def captured_logs():
    """Collect structlog events instead of printing them to stdout."""
    with capture_logs() as logs:
        yield logs


def paragraph(text, block_id=None):
    attrs = {"block_id": block_id} if block_id else {}
    return Node(NodeType.PARAGRAPH, text, attrs)


def item(text, item_type=NodeType.LIST_ITEM, **attrs):
    return Node(item_type, attrs=attrs, children=[paragraph(text)])


@pytest.fixture
def sample_document():
    """
    Small document with known IDs:

        blk_h   heading "Notes"
        blk_a   paragraph "Hello"
        blk_L   bullet list "one", "two"
        blk_img image "A cat"
    """
    return Document(blocks=[
        Node(NodeType.HEADING, "Notes", {"level": 1, "block_id": "blk_h"}),
        paragraph("Hello", "blk_a"),
        Node(NodeType.BULLET_LIST, attrs={"block_id": "blk_L"}, children=[
            item("one"),
            item("two"),
        ]),
        Node(NodeType.IMAGE, attrs={"src": "cat.png", "alt": "A cat", "block_id": "blk_img"}),
    ])


@pytest.fixture
def fast_agent_config():
    """Agent settings without artificial pauses."""
    return AgentConfig(
        ack_timeout_seconds=1.0,
        edit_gap_seconds=0,
        continuation_delay_seconds=0,
    )


class ScriptedTransport:
    """
    Transport replaying canned model output, one entry per request.

    Entries may be a dict (sent as JSON), a raw string, an ErrorEvent or a
    TransportError to raise.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def stream(self, request):
        self.requests.append(request)
        entry = self.responses.pop(0)
        if isinstance(entry, TransportError):
            raise entry
        if isinstance(entry, ErrorEvent):
            yield entry
            return
        raw = entry if isinstance(entry, str) else json.dumps(entry)
        yield ChunkEvent(content=raw)
        yield CompleteEvent(result=parse_agent_response(raw), raw_content=raw)


@pytest.fixture
def scripted_transport():
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport
