"""
Base-branch merge recognition.
"""

import re
from typing import Tuple

_MAIN_ALIASES = ("main", "master")


def _branch_names(base_branch: str) -> Tuple[str, ...]:
    if base_branch.lower() in _MAIN_ALIASES:
        return _MAIN_ALIASES
    return (base_branch,)


def is_base_branch_merge(message: str, base_branch: str) -> bool:
    """
    True if the commit message merges the base branch into a feature branch.

    Recognizes "Merge branch '<base>' into ..." and
    "Merge remote-tracking branch 'origin/<base>' into ...", case-insensitively,
    with main and master treated as aliases of each other.
    """
    first_line = message.split("\n", 1)[0].strip()
    for name in _branch_names(base_branch):
        branch = re.escape(name)
        if re.match(rf"^Merge branch '{branch}' into\b", first_line, re.IGNORECASE):
            return True
        if re.match(
            rf"^Merge remote-tracking branch 'origin/{branch}' into\b",
            first_line,
            re.IGNORECASE,
        ):
            return True
    return False
