"""Change summaries between two versions of a document."""

import difflib

from blockwise.models.session import DocumentDiff


def calculate_line_diff(original: str, final: str) -> tuple[int, int]:
    """Count added and removed lines by set difference.

    Lines are compared trimmed, blank lines ignored. A line counts as
    added when no identical line exists in the original, and as removed
    when no identical line exists in the final text. Order is ignored, so
    this undercounts moves and repeated lines; it is a summary figure, not
    an edit distance.

    Args:
        original: Text before the session
        final: Text after the session

    Returns:
        (lines_added, lines_removed)
    """
    original_lines = [line.strip() for line in original.split("\n") if line.strip()]
    final_lines = [line.strip() for line in final.split("\n") if line.strip()]
    original_set = set(original_lines)
    final_set = set(final_lines)

    added = sum(1 for line in final_lines if line not in original_set)
    removed = sum(1 for line in original_lines if line not in final_set)
    return added, removed


def build_document_diff(original: str, final: str, title: str = "") -> DocumentDiff:
    """Build the end-of-session diff object."""
    added, removed = calculate_line_diff(original, final)
    return DocumentDiff(
        original_content=original,
        final_content=final,
        lines_added=added,
        lines_removed=removed,
        title=title,
    )


def generate_unified_diff(
    original: str,
    modified: str,
    fromfile: str = "original",
    tofile: str = "modified",
    context_lines: int = 3,
) -> str:
    """Generate unified diff between original and modified content.

    Lines that differ only by the presence/absence of a trailing newline
    are treated as identical to avoid showing spurious differences.

    Args:
        original: Original content
        modified: Modified content
        fromfile: Label for original file
        tofile: Label for modified file
        context_lines: Number of context lines to show

    Returns:
        Unified diff as string
    """
    original_lines = original.splitlines(keepends=True)
    modified_lines = modified.splitlines(keepends=True)

    # Ensure every line ends with newline (normalize trailing newlines)
    original_lines = [line if line.endswith('\n') else line + '\n' for line in original_lines]
    modified_lines = [line if line.endswith('\n') else line + '\n' for line in modified_lines]

    diff_lines = difflib.unified_diff(
        original_lines,
        modified_lines,
        fromfile=fromfile,
        tofile=tofile,
        n=context_lines,
    )

    return "".join(line if line.endswith('\n') else line + '\n' for line in diff_lines)
