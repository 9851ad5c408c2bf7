from app.utils.text import clean_note, normalize_search


def test_clean_note_keeps_paragraphs():
    raw = "Called twice.  \r\n\r\n\r\n\r\nNo answer\x07, will retry\tFriday. "
    assert clean_note(raw) == "Called twice.\n\nNo answer, will retry\tFriday."


def test_clean_note_blank():
    assert clean_note(" \n\t ") == ""
    assert clean_note(None) == ""


def test_normalize_search_collapses_whitespace():
    assert normalize_search("  Jane \n  Doe\x00 ") == "Jane Doe"
