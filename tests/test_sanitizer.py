from dna_analyzer.nodes.sanitizer import sanitize_text


def test_removes_control_characters_but_keeps_newline_and_tab():
    text = "a\x00b\x07c\x0bd\x1fe\x7ff\ng\th"
    assert sanitize_text(text) == "abcdef\ng\th"


def test_none_and_empty_return_empty_string():
    assert sanitize_text(None) == ""
    assert sanitize_text("") == ""


def test_is_idempotent():
    text = "Title\x01 with \x1b[31mescape\x7f and\r\nlines"
    once = sanitize_text(text)
    assert sanitize_text(once) == once


def test_clean_text_is_untouched():
    text = "Plain text, unicode é中 and emoji \U0001f600\n\tindented"
    assert sanitize_text(text) == text


def test_carriage_return_is_stripped():
    # 0x0D falls in the 0x0B-0x1F range
    assert sanitize_text("line\r\n") == "line\n"


def test_non_string_values_are_stringified():
    assert sanitize_text(150) == "150"
    assert sanitize_text(["fast\x00"]) == "['fast']"
