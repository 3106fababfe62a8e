"""
Slicing of the wordlist into candidate groups.
"""

import math
from typing import Iterable, List, Mapping, Union

from .models import CandidateGroup

# First probe value; values count up from here.
VALUE_BASE = 100000


def populate(wordlist: Iterable[str], reserved: Iterable[str] = ()) -> CandidateGroup:
    """Give every name a unique probe value, skipping the ``reserved`` ones."""
    taken = set(reserved)
    params = []
    counter = VALUE_BASE
    for name in wordlist:
        value = str(counter)
        while value in taken:
            counter += 1
            value = str(counter)
        params.append((name, value))
        counter += 1
    return CandidateGroup(tuple(params))


def partition(items: Union[CandidateGroup, Mapping[str, str]], group_size: int) -> List[CandidateGroup]:
    """
    Slice ``items`` into groups of ``group_size``; the last one may be smaller.

    Raises:
        ValueError: if ``group_size`` is less than 1
    """
    if group_size < 1:
        raise ValueError("group_size must be at least 1")
    if not isinstance(items, CandidateGroup):
        items = CandidateGroup.from_mapping(items)
    pairs = items.params
    return [
        CandidateGroup(pairs[start:start + group_size])
        for start in range(0, len(pairs), group_size)
    ]


def split(group: CandidateGroup) -> List[CandidateGroup]:
    """Halve a group that showed signal. A single parameter cannot be split further."""
    if len(group) <= 1:
        return [group]
    middle = math.ceil(len(group) / 2)
    return [CandidateGroup(group.params[:middle]), CandidateGroup(group.params[middle:])]


def max_generations(group_size: int) -> int:
    """Upper bound on narrowing generations for groups of ``group_size``."""
    return 1 + math.ceil(math.log2(group_size)) if group_size > 1 else 1
