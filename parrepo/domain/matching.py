import fnmatch
import re
from typing import Optional

MATCH_TYPES = ("Exact", "CaseInsensitive", "StartsWith", "Substring", "Wildcard", "Regex")


def match_text(value: str, keyword: str, match_type: Optional[str]) -> bool:
    """
    Decide whether an index key satisfies a query keyword.

    Exact and Regex compare case-sensitively; the other rules fold case.
    """
    if keyword is None:
        return False
    rule = (match_type or "Exact").strip() or "Exact"

    if rule == "Exact":
        return value == keyword
    if rule == "Regex":
        return re.search(keyword, value) is not None

    folded_value = value.casefold()
    folded_keyword = keyword.casefold()
    if rule == "CaseInsensitive":
        return folded_value == folded_keyword
    if rule == "StartsWith":
        return folded_value.startswith(folded_keyword)
    if rule == "Substring":
        return folded_keyword in folded_value
    if rule == "Wildcard":
        # Only * and ? are special; [ is matched literally.
        return fnmatch.fnmatchcase(folded_value, folded_keyword.replace("[", "[[]"))

    raise ValueError(f"Unknown match type {match_type!r}; expected one of {', '.join(MATCH_TYPES)}")
