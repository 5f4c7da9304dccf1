# tests/test_mentions.py

from __future__ import annotations

from taskflow_api.app.services.mention_utils import extract_mentions, get_mentioned_user_ids

MEMBERS = [
    {"id": 11, "user_id": 1, "name": "Olivia Owner"},
    {"id": 12, "user_id": 2, "name": "John Smith"},
    {"id": 13, "user_id": 3, "name": "Johnny"},
    {"id": 14, "user_id": 4, "name": "Maria Santos"},
]


def test_exact_compact_name_wins_over_earlier_substring() -> None:
    (mention,) = extract_mentions("ping @johnny", MEMBERS)

    assert mention.user_id == 3
    assert mention.member_id == 13


def test_substring_picks_first_member_in_order() -> None:
    (mention,) = extract_mentions("ping @john", MEMBERS)

    # "John Smith" comes before "Johnny".
    assert mention.user_id == 2


def test_name_with_spaces_matches_compact_token() -> None:
    (mention,) = extract_mentions("@mariasantos please check", MEMBERS)

    assert mention.user_id == 4
    assert mention.start_index == 0
    assert mention.end_index == len("@mariasantos")


def test_unknown_token_is_kept_unresolved() -> None:
    (mention,) = extract_mentions("hello @nobody", MEMBERS)

    assert mention.username == "nobody"
    assert mention.user_id is None
    assert get_mentioned_user_ids([mention]) == []


def test_all_excludes_author() -> None:
    (mention,) = extract_mentions("@all standup in 5", MEMBERS, current_user_id=1)

    assert mention.is_all_mention is True
    assert [m["user_id"] for m in mention.all_members] == [2, 3, 4]
    assert get_mentioned_user_ids([mention]) == [2, 3, 4]


def test_ids_are_unique_in_first_seen_order() -> None:
    mentions = extract_mentions("@maria @john @maria @all", MEMBERS, current_user_id=1)

    assert [m.username for m in mentions] == ["maria", "john", "maria", "all"]
    assert get_mentioned_user_ids(mentions) == [4, 2, 3]


def test_case_insensitive_and_empty_content() -> None:
    (mention,) = extract_mentions("@OLIVIA", MEMBERS)

    assert mention.user_id == 1
    assert extract_mentions("", MEMBERS) == []
    assert extract_mentions("no mentions here", MEMBERS) == []


def test_first_name_token_resolves_full_name() -> None:
    (mention,) = extract_mentions("@john check this", [{"name": "John Doe", "user_id": 101, "id": 7}])

    assert mention.user_id == 101
    assert mention.member_id == 7
