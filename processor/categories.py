"""Category set computations for the today tag."""
from typing import Iterable, List


def _unique(categories: Iterable[int]) -> List[int]:
    seen = set()
    result = []
    for category_id in categories:
        if category_id not in seen:
            seen.add(category_id)
            result.append(category_id)
    return result


def remove_tag(categories: Iterable[int], tag_id: int) -> List[int]:
    """
    Return the category ids without the tag.

    Args:
        categories: Current category ids of an event
        tag_id: Category id of the today tag

    Returns:
        New list of unique category ids, in input order, never containing tag_id
    """
    return [category_id for category_id in _unique(categories) if category_id != tag_id]


def add_tag(categories: Iterable[int], tag_id: int) -> List[int]:
    """
    Return the category ids with the tag present exactly once.

    This is a set union, so applying it to its own output changes nothing.

    Args:
        categories: Current category ids of an event
        tag_id: Category id of the today tag

    Returns:
        New list of unique category ids; the tag is appended if it was absent
    """
    result = _unique(categories)
    if tag_id not in result:
        result.append(tag_id)
    return result
