import pytest

from wiltos.strhelper import (
    after_first_space,
    begins_with,
    compare_literal,
    contains,
    first_word,
    has_text,
    is_space,
    ltrim,
    rtrim,
    trim,
    trim_after_prefix,
)


def test_compare_literal_exact_match_only():
    assert compare_literal("pwd", "pwd") is True
    assert compare_literal("pwd", "pw") is False
    assert compare_literal("pw", "pwd") is False


def test_begins_with():
    assert begins_with("hello world", "hello") is True
    assert begins_with("he", "hello") is False
    assert begins_with("anything", "") is True


def test_contains():
    assert contains("abc", "") is True
    assert contains("abcdef", "cde") is True
    assert contains("abc", "abd") is False


@pytest.mark.parametrize("ch", [" ", "\t", "\r", "\n", ord(" "), ord("\n")])
def test_is_space_true(ch):
    assert is_space(ch) is True


@pytest.mark.parametrize("ch", ["a", "", "  ", ord("x")])
def test_is_space_false(ch):
    assert is_space(ch) is False


def test_trims():
    assert ltrim("\t ab ") == "ab "
    assert rtrim(" ab \r\n") == " ab"
    assert trim("  x y \n") == "x y"


def test_trim_is_idempotent():
    once = trim(" \t value \n")
    assert trim(once) == once


def test_trim_after_prefix():
    assert trim_after_prefix("echo   hi", "echo") == "hi"
    assert trim_after_prefix("ls x", "cd") == "ls x"


def test_after_first_space():
    assert after_first_space("run /bin/hello  arg") == "/bin/hello  arg"
    assert after_first_space("  echo \t hi") == "hi"


@pytest.mark.parametrize("line", ["pwd", "ls   ", "", "   "])
def test_after_first_space_none(line):
    assert after_first_space(line) is None


def test_first_word():
    assert first_word("  ls /disk") == "ls"
    assert first_word("cat\tx") == "cat\tx"
    assert first_word("") == ""


def test_has_text():
    assert has_text(None) is False
    assert has_text(" \t\r\n") is False
    assert has_text(" a") is True