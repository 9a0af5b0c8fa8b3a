"""
Test suite for text normalisation.

Verifies PDF layout artefacts are removed while paragraph breaks survive.
"""

from rulebook.src.utils.text_utils import count_words, normalize


class TestNormalize:
    """Test suite for normalize()."""

    def test_should_return_empty_string_for_empty_input(self) -> None:
        assert normalize("") == ""

    def test_should_rejoin_words_hyphenated_across_lines(self) -> None:
        assert normalize("The regu-\nlation applies.") == "The regulation applies."

    def test_should_keep_hyphens_inside_a_line(self) -> None:
        assert normalize("A well-known rule.") == "A well-known rule."

    def test_should_join_layout_line_breaks_with_a_space(self) -> None:
        assert normalize("Students must attend\nall lectures.") == "Students must attend all lectures."

    def test_should_keep_paragraph_breaks(self) -> None:
        """Three or more newlines collapse to exactly one blank line."""
        assert normalize("First rule.\n\n\n\nSecond rule.") == "First rule.\n\nSecond rule."

    def test_should_treat_whitespace_only_lines_as_blank(self) -> None:
        assert normalize("First rule.\n   \t\nSecond rule.") == "First rule.\n\nSecond rule."

    def test_should_strip_bom_and_normalise_crlf(self) -> None:
        assert normalize("\ufeffLine one\r\nline two\rline three") == "Line one line two line three"

    def test_should_remove_soft_hyphens(self) -> None:
        assert normalize("exam\u00adination") == "examination"

    def test_should_collapse_horizontal_whitespace_and_trim(self) -> None:
        assert normalize("   Minimum \t 75%    attendance.  ") == "Minimum 75% attendance."

    def test_should_be_idempotent(self) -> None:
        raw = "Rule one\ncontinues here.\n\n\nRule  two is sepa-\nrate."
        once = normalize(raw)
        assert normalize(once) == once


class TestCountWords:
    def test_should_count_whitespace_separated_words(self) -> None:
        assert count_words("Minimum 75%  attendance\nis required.") == 5

    def test_should_return_zero_for_blank_text(self) -> None:
        assert count_words("   ") == 0
