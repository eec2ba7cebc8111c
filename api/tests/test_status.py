from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, make_item
from saved_items.services.status import SaveAction, SaveStatus, apply_transition, in_target_state, rule_for

T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


def test_status_codes_and_labels_round_trip() -> None:
    assert [status.code for status in SaveStatus] == [0, 1, 2, 3]
    assert SaveStatus.from_code(1) is SaveStatus.ARCHIVED
    assert SaveStatus.from_label("HIDDEN") is SaveStatus.HIDDEN
    assert SaveStatus.DELETED.label == "DELETED"


@pytest.mark.parametrize("code", [4, -1, True, "1", None])
def test_from_code_rejects_unknown_codes(code: object) -> None:
    with pytest.raises(ValueError):
        SaveStatus.from_code(code)


def test_from_label_rejects_unknown_label() -> None:
    with pytest.raises(ValueError):
        SaveStatus.from_label("PENDING")


def test_archive_stamps_archived_at_and_bumps_updated_at() -> None:
    item = apply_transition(make_item("10"), SaveAction.ARCHIVE, T1)

    assert item.status is SaveStatus.ARCHIVED
    assert item.is_archived is True
    assert item.archived_at == T1
    assert item.updated_at == T1


def test_archive_twice_keeps_status_and_refreshes_archived_at() -> None:
    once = apply_transition(make_item("10"), SaveAction.ARCHIVE, T1)
    twice = apply_transition(once, SaveAction.ARCHIVE, T2)

    assert twice.status is SaveStatus.ARCHIVED
    assert twice.archived_at == T2
    assert twice.updated_at == T2


def test_unarchive_clears_archived_at() -> None:
    archived = make_item("10", status=SaveStatus.ARCHIVED, archived_at=T0)
    item = apply_transition(archived, SaveAction.UNARCHIVE, T1)

    assert item.status is SaveStatus.UNREAD
    assert item.archived_at is None


def test_favorite_keeps_first_favorited_at_when_already_favorite() -> None:
    favorite = make_item("10", is_favorite=True, favorited_at=T0)
    item = apply_transition(favorite, SaveAction.FAVORITE, T1)

    assert item.is_favorite is True
    assert item.favorited_at == T0
    assert item.updated_at == T1


def test_favorite_then_unfavorite() -> None:
    item = apply_transition(make_item("10"), SaveAction.FAVORITE, T1)
    assert item.favorited_at == T1

    item = apply_transition(item, SaveAction.UNFAVORITE, T2)
    assert item.is_favorite is False
    assert item.favorited_at is None


def test_delete_mirrors_updated_at_and_undelete_restores_nothing() -> None:
    archived = make_item("10", status=SaveStatus.ARCHIVED, archived_at=T0)
    deleted = apply_transition(archived, SaveAction.DELETE, T1)

    assert deleted.status is SaveStatus.DELETED
    assert deleted.deleted_at == deleted.updated_at == T1

    restored = apply_transition(deleted, SaveAction.UNDELETE, T2)
    assert restored.status is SaveStatus.UNREAD
    assert restored.deleted_at is None


def test_older_timestamp_never_moves_updated_at_back() -> None:
    item = make_item("10", updated_at=T2)
    archived = apply_transition(item, SaveAction.ARCHIVE, T1)

    assert archived.updated_at == T2
    assert archived.archived_at == T1


def test_transitions_never_touch_identity_fields() -> None:
    before = make_item("10")
    item = before
    for action in SaveAction:
        item = apply_transition(item, action, T1)
        assert (item.id, item.user_id, item.url, item.created_at) == (
            before.id,
            before.user_id,
            before.url,
            before.created_at,
        )


def test_in_target_state() -> None:
    assert in_target_state(make_item("10", is_favorite=True), rule_for(SaveAction.FAVORITE))
    assert not in_target_state(make_item("10"), rule_for(SaveAction.ARCHIVE))
