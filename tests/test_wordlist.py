"""
Tests for wordlist loading.
"""

import pytest

from param_miner.core.config import GuesserConfig
from param_miner.core.exceptions import WordlistError
from param_miner.guesser.wordlist import WordlistManager, merge_wordlists, read_wordlist


@pytest.fixture
def custom(tmp_path):
    path = tmp_path / "words.txt"
    path.write_text("# custom names\nsesame\n\n  debug  \nsesame\n")
    return path


def test_read_skips_comments_and_blanks(custom):
    assert read_wordlist(custom) == ["sesame", "debug", "sesame"]


def test_missing_file(tmp_path):
    with pytest.raises(WordlistError):
        read_wordlist(tmp_path / "missing.txt")


def test_merge_keeps_first_occurrence():
    assert merge_wordlists(["a", "b"], ["b", "c", "a"]) == ("a", "b", "c")


class TestWordlistManager:
    """Source selection."""

    def test_bundled_wordlist(self):
        words = WordlistManager(GuesserConfig()).get_wordlist()

        assert "id" in words
        assert "debug" in words
        assert not any(w.startswith("#") for w in words)

    def test_custom_only(self, custom):
        config = GuesserConfig(
            use_predefined_wordlist=False, use_custom_wordlist=True, custom_wordlist_path=custom
        )
        assert WordlistManager(config).get_wordlist() == ("sesame", "debug")

    def test_both_sources_are_merged(self, custom):
        config = GuesserConfig(use_custom_wordlist=True, custom_wordlist_path=custom)

        words = WordlistManager(config).get_wordlist()

        assert words[-1] == "sesame"
        assert words.count("debug") == 1
