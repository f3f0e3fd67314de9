"""Prompt construction for agent and ask modes."""

from typing import Dict

from blockwise.models.config import AgentConfig
from blockwise.models.protocol import AgentRequest, SessionMode


AGENT_PROMPT = """You are a document editing agent working on a block-structured rich-text document.
You make changes by returning edits. Describing a change without an edit does nothing.

RESPONSE FORMAT
Reply with ONLY one JSON object, no code fences:
{{
  "response": "Short summary of the changes made in this reply",
  "edits": [ ... ],
  "hasMore": false
}}
Set "hasMore" to true while any part of the request is still unfinished.
Use at most {max_edits} edits per reply.

EDIT OBJECTS
{{
  "blockId": "blk_xxx",
  "action": "replace" | "delete" | "insertAfter" | "moveAfter",
  "replaceWith": "markdown content (replace and insertAfter only)",
  "targetBlockId": "blk_yyy (moveAfter only: the block to move after)",
  "description": "one line, in the user's language"
}}
- blockId is the bare address: no "ID:", "LIST:" or "ITEM:" prefix, no brackets.
- Edits are applied in order; each one sees the document left by the previous one.

DOCUMENT MARKERS
- [ID:blk_xxx] content -> a block, address blk_xxx
- [LIST:blk_xxx] (bullet list with N items) -> the whole list, address blk_xxx
- [ITEM:blk_xxx_item0] - text -> one list item, address blk_xxx_item0.
  Item addresses are positions and change when items are added or removed.
  For items, replaceWith is the item text only, without "- ", "1. " or "- [ ] ".
- [NON-EDITABLE:type] description -> media, tables, math and tables of contents.
  These can only be deleted or moved, never rewritten.

MARKDOWN
Headings #..######, paragraphs, lists (- / 1. / - [ ]), > quotes, ```lang code```,
$$ math $$, --- rules, [[toc]], :::info notices.

RULES
- Check the document before inserting so nothing is duplicated.
- Use only addresses present in CURRENT DOCUMENT.
- Keep "response" brief: no preamble, no offers of further help.
- Answer in the user's language."""

SUMMARY_SECTION = """

=== CONTEXT SUMMARY (earlier iterations) ===
{summary}
===
The summary holds the original request and the remaining work. Finish all of it;
keep "hasMore" true until the original request is fully satisfied."""

CONTINUATION_SECTION = """

=== ITERATION {iteration} ===
The document below already contains your previous edits, and addresses may have changed.
1. Audit the CURRENT DOCUMENT: what exists now, what is still missing, any duplicates.
2. Plan up to {max_edits} edits using only the addresses you see now.
3. Do not re-insert content that is already there.

Your previous reply was:
{previous}"""

DOCUMENT_SECTION = """

CURRENT DOCUMENT{title}:
---
{document}
---"""

ASK_PROMPT = """You are a helpful writing assistant for a collaborative document editor.
Answer questions directly and concisely, with examples when they help.
Do not use preamble or closing offers. If unsure, say so briefly.
Answer in the user's language."""

ASK_DOCUMENT_SECTION = """

The user is working on this document{title}:
{document}"""


def _title_suffix(title: str) -> str:
    return f' "{title}"' if title else ""


def build_agent_system_prompt(request: AgentRequest, config: AgentConfig) -> str:
    """
    System prompt for an agent turn.

    Args:
        request: Request being sent
        config: Agent settings (context size limits)

    Returns:
        Prompt text with summary, continuation and document sections
    """
    prompt = AGENT_PROMPT.format(max_edits=request.max_edits_per_iteration)

    if request.context_summary:
        prompt += SUMMARY_SECTION.format(summary=request.context_summary)

    if request.continue_from:
        prompt += CONTINUATION_SECTION.format(
            iteration=request.iteration,
            max_edits=request.max_edits_per_iteration,
            previous=request.continue_from,
        )

    if request.document_context:
        prompt += DOCUMENT_SECTION.format(
            title=_title_suffix(request.document_title),
            document=request.document_context[:config.max_context_chars],
        )

    return prompt


def build_ask_system_prompt(request: AgentRequest, config: AgentConfig) -> str:
    """System prompt for a plain question about the document."""
    prompt = ASK_PROMPT
    if request.document_context:
        prompt += ASK_DOCUMENT_SECTION.format(
            title=_title_suffix(request.document_title),
            document=request.document_context[:config.ask_context_chars],
        )
    return prompt


def build_messages(request: AgentRequest, config: AgentConfig) -> list[Dict[str, str]]:
    """
    Full chat message list for a request.

    History is cut to the most recent entries: fewer when a context
    summary already carries the older turns.
    """
    if request.mode == SessionMode.ASK:
        system_prompt = build_ask_system_prompt(request, config)
    else:
        system_prompt = build_agent_system_prompt(request, config)

    limit = config.summary_history_limit if request.context_summary else config.history_limit
    history = request.history[-limit:] if limit else []

    messages = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": entry.role, "content": entry.content} for entry in history)
    messages.append({"role": "user", "content": request.message})
    return messages
