"""
Parsing of ``@name`` mentions in task messages.

A mention token is ``@`` followed by word characters.  ``@all`` targets
every workspace member except the author.  Any other token is resolved
against the member list with a fixed tie‑break:

1. a member whose name, lowercased and with whitespace removed, equals
   the token;
2. otherwise the first member, in the order given, whose lowercased
   name (with or without whitespace) contains the token;
3. otherwise the token is kept with no member.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

MENTION_PATTERN = re.compile(r"@(\w+)")
ALL_TOKEN = "all"


@dataclass
class MentionMatch:
    username: str
    start_index: int
    end_index: int
    user_id: Optional[int] = None
    member_id: Optional[int] = None
    is_all_mention: bool = False
    all_members: List[Dict] = field(default_factory=list)


def _compact(name: str) -> str:
    return re.sub(r"\s+", "", name.lower())


def _resolve(token: str, members: List[Dict]) -> Optional[Dict]:
    token = token.lower()
    for member in members:
        if _compact(member.get("name") or "") == token:
            return member
    for member in members:
        name = (member.get("name") or "").lower()
        if token in name or token in _compact(name):
            return member
    return None


def extract_mentions(
    content: str,
    members: Iterable[Dict],
    current_user_id: Optional[int] = None,
) -> List[MentionMatch]:
    """Find the mentions in ``content``.

    Parameters
    ----------
    content : str
        Message text.
    members : Iterable[dict]
        Workspace members with at least ``user_id`` and ``name`` keys
        (``id`` is copied into ``member_id`` when present).
    current_user_id : Optional[int]
        Author of the message; excluded from ``@all``.

    Returns
    -------
    List[MentionMatch]
        One entry per token, in order of appearance.
    """
    member_list = list(members)
    matches: List[MentionMatch] = []
    if not content:
        return matches
    for match in MENTION_PATTERN.finditer(content):
        token = match.group(1)
        mention = MentionMatch(
            username=token,
            start_index=match.start(),
            end_index=match.end(),
        )
        if token.lower() == ALL_TOKEN:
            mention.is_all_mention = True
            mention.all_members = [
                m for m in member_list if m.get("user_id") != current_user_id
            ]
        else:
            member = _resolve(token, member_list)
            if member is not None:
                mention.user_id = member.get("user_id")
                mention.member_id = member.get("id")
        matches.append(mention)
    return matches


def get_mentioned_user_ids(mentions: Iterable[MentionMatch]) -> List[int]:
    """Unique user ids targeted by the mentions, in first‑seen order."""
    seen: List[int] = []
    for mention in mentions:
        if mention.is_all_mention:
            candidates = [m.get("user_id") for m in mention.all_members]
        else:
            candidates = [mention.user_id]
        for user_id in candidates:
            if user_id is not None and user_id not in seen:
                seen.append(user_id)
    return seen
