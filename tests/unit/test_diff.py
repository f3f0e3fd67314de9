"""Unit tests for document diff utilities."""

from blockwise.services.diff import build_document_diff, calculate_line_diff, generate_unified_diff


class TestCalculateLineDiff:
    """Test set-difference line counting."""

    def test_single_changed_line(self):
        """Test one replaced line counts as one added and one removed."""
        assert calculate_line_diff("A\nB", "A\nC") == (1, 1)

    def test_identical(self):
        """Test unchanged text has no differences."""
        assert calculate_line_diff("A\nB", "A\nB") == (0, 0)

    def test_whitespace_and_blank_lines_ignored(self):
        """Test trimming and blank lines do not count as changes."""
        assert calculate_line_diff("A\n\nB", "  A\nB  \n\n") == (0, 0)

    def test_reordering_not_counted(self):
        """Test moving lines around is not reported."""
        assert calculate_line_diff("A\nB\nC", "C\nA\nB") == (0, 0)

    def test_pure_addition(self):
        """Test added lines only."""
        assert calculate_line_diff("A", "A\nB\nC") == (2, 0)

    def test_pure_removal(self):
        """Test removed lines only."""
        assert calculate_line_diff("A\nB\nC", "A") == (0, 2)


class TestBuildDocumentDiff:
    """Test the diff model."""

    def test_fields(self):
        """Test counts and texts are carried on the diff."""
        diff = build_document_diff("A\nB", "A\nC", title="notes")

        assert diff.lines_added == 1
        assert diff.lines_removed == 1
        assert diff.original_content == "A\nB"
        assert diff.final_content == "A\nC"
        assert diff.title == "notes"


class TestGenerateUnifiedDiff:
    """Test unified diff generation."""

    def test_unified_diff_shows_change(self):
        """Test changed lines appear with +/- prefixes."""
        diff = generate_unified_diff("Hello\nWorld\n", "Hello\nThere\n")

        assert "-World\n" in diff
        assert "+There\n" in diff
        assert diff.startswith("--- original\n+++ modified\n")

    def test_no_changes(self):
        """Test identical content gives an empty diff."""
        assert generate_unified_diff("same\n", "same\n") == ""

    def test_trailing_newline_ignored(self):
        """Test a missing final newline is not reported as a change."""
        assert generate_unified_diff("a\nb", "a\nb\n") == ""
