"""Tests for boilerplate removal and whitespace normalization."""
from docqa.rag.normalizer import TextNormalizer, normalize


def test_removes_boilerplate_case_insensitively():
    """Test that organization name, email and domain are stripped."""
    raw = "Contact NIMBLEEDGE Pvt. Ltd. at Sales@NimbleEdge.com today"
    assert normalize(raw) == "Contact at today"


def test_removes_phone_number():
    """Test that the phone number pattern is stripped."""
    assert normalize("Call +91 87179 83153 now") == "Call now"


def test_removes_ocr_variant_of_organization_name():
    """Test that the OCR misspelling of the organization name is stripped."""
    assert normalize("Header nimbleedge pvt. Itd. body") == "Header body"


def test_footer_marker_removed_to_end_of_line():
    """Test that the page footer is removed without eating the next line."""
    raw = "Line one\nData for Page No. 12 of 40\nLine two"
    assert normalize(raw) == "Line one Line two"


def test_collapses_whitespace_and_trims():
    """Test that whitespace runs become a single space."""
    assert normalize("  alpha\t\tbeta\n\n\ngamma  \r\n") == "alpha beta gamma"


def test_no_match_is_noop():
    """Test that clean text passes through unchanged."""
    text = "The leave policy allows 20 days per year."
    assert normalize(text) == text


def test_empty_input():
    """Test that empty and whitespace-only text normalize to empty."""
    assert normalize("") == ""
    assert normalize(" \n\t ") == ""


def test_custom_patterns():
    """Test a normalizer built with its own pattern list."""
    normalizer = TextNormalizer(patterns=[r"confidential", r"draft \d+"])
    assert normalizer.normalize("CONFIDENTIAL Draft 3 quarterly report") == "quarterly report"


def test_patterns_apply_to_output_of_previous_removal():
    """Test that a later pattern sees text joined by an earlier removal."""
    normalizer = TextNormalizer(patterns=[r"XX", r"abcd"])
    assert normalizer.normalize("abXXcd rest") == "rest"


def test_deterministic():
    """Test that normalizing twice gives the same result."""
    raw = "Some   text\nwith nimbleedge.com inside"
    assert normalize(raw) == normalize(raw) == normalize(normalize(raw))
