"""Recognising comments this bot posted.

Every comment the bot writes starts with a hidden marker naming its kind.
Comments posted before the marker existed are still recognised by their
heading phrases.
"""

import re
from typing import Iterable, Optional

from cla_api.github.types import IssueComment

KIND_UNSIGNED = "unsigned"
KIND_RESIGN = "resign"
KIND_UNCONFIGURED = "unconfigured"

# Kinds a passing decision may clean up. Any other managed kind stays put.
REMOVABLE_KINDS = frozenset({KIND_UNSIGNED, KIND_RESIGN, KIND_UNCONFIGURED})

LEGACY_PROMPT_PHRASES = (
    "Contributor License Agreement Required",
    "Re-signing Required",
    "CLA Bot is not configured for this repository",
)

_MARKER_RE = re.compile(r"<!--\s*cla-bot:managed\s+kind=([a-z_-]+)\s*-->")


def marker(kind: str) -> str:
    return f"<!-- cla-bot:managed kind={kind} -->"


def managed_kind(body: Optional[str]) -> Optional[str]:
    """Kind named by the hidden marker, ``"legacy"`` for old prompts, else None."""
    if not body:
        return None
    match = _MARKER_RE.search(body)
    if match:
        return match.group(1)
    if any(phrase in body for phrase in LEGACY_PROMPT_PHRASES):
        return "legacy"
    return None


def is_managed_comment(body: Optional[str]) -> bool:
    return managed_kind(body) is not None


def is_removable_prompt_comment(body: Optional[str]) -> bool:
    kind = managed_kind(body)
    return kind == "legacy" or kind in REMOVABLE_KINDS


def find_latest_managed_comment(comments: Iterable[IssueComment]) -> Optional[IssueComment]:
    """Most recent managed comment, scanning from latest to earliest.

    Legacy phrase matches only count on comments posted by a bot account.
    """
    for comment in reversed(list(comments)):
        kind = managed_kind(comment.body)
        if kind is None:
            continue
        if kind == "legacy" and comment.user.type != "Bot":
            continue
        return comment
    return None
