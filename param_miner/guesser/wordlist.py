"""
Wordlist manager for parameter guessing.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from ..core.config import GuesserConfig
from ..core.exceptions import WordlistError

logger = logging.getLogger(__name__)

DEFAULT_WORDLIST_PATH = Path(__file__).resolve().parent.parent / "wordlists" / "small_list.txt"


def read_wordlist(path: Union[str, Path]) -> List[str]:
    """Read one name per line, skipping blank lines and ``#`` comments."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            lines = [line.strip() for line in f]
    except OSError as e:
        raise WordlistError(f"Cannot read wordlist {path}: {e}") from e
    return [line for line in lines if line and not line.startswith("#")]


def merge_wordlists(*wordlists: Iterable[str]) -> Tuple[str, ...]:
    """Concatenate wordlists, keeping the first occurrence of each name."""
    merged = {}
    for wordlist in wordlists:
        for name in wordlist:
            merged.setdefault(name, None)
    return tuple(merged)


class WordlistManager:
    """Loads the predefined and/or custom wordlists selected in the config."""

    def __init__(self, config: GuesserConfig, predefined_path: Optional[Path] = None):
        self.config = config
        self.predefined_path = predefined_path or DEFAULT_WORDLIST_PATH

    def get_wordlist(self) -> Tuple[str, ...]:
        """Merged, deduplicated wordlist for a run."""
        sources = []
        if self.config.use_predefined_wordlist:
            sources.append(read_wordlist(self.predefined_path))
        if self.config.use_custom_wordlist:
            sources.append(read_wordlist(self.config.custom_wordlist_path))

        wordlist = merge_wordlists(*sources)
        logger.debug(f"Loaded {len(wordlist)} candidate parameter(s) from {len(sources)} source(s)")
        return wordlist
