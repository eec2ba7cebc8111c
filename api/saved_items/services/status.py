"""Lifecycle states of a saved item and the rules that move between them.

The same rule table drives both the in-memory transition (``apply_transition``)
and the SQL assignments issued by the mutation service, so a status change
means the same thing on either path.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from saved_items.services.entities import SavedItem


class SaveStatus(Enum):
    UNREAD = 0
    ARCHIVED = 1
    DELETED = 2
    HIDDEN = 3

    @property
    def code(self) -> int:
        """Numeric form stored in the ``list.status`` column."""
        return self.value

    @property
    def label(self) -> str:
        """String form used at the API boundary."""
        return self.name

    @classmethod
    def from_code(cls, code: object) -> SaveStatus:
        if isinstance(code, bool) or not isinstance(code, int):
            raise ValueError(f"status code must be an integer, got {code!r}")
        return cls(code)

    @classmethod
    def from_label(cls, label: str) -> SaveStatus:
        try:
            return cls[label]
        except KeyError as exc:
            raise ValueError(f"unknown status: {label}") from exc


class SaveAction(str, Enum):
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"
    DELETE = "delete"
    UNDELETE = "undelete"


@dataclass(frozen=True, slots=True)
class TransitionRule:
    status: SaveStatus | None = None
    favorite: bool | None = None
    stamp: str | None = None
    clear: str | None = None
    stamp_on_change_only: bool = False


TRANSITION_RULES: dict[SaveAction, TransitionRule] = {
    SaveAction.ARCHIVE: TransitionRule(status=SaveStatus.ARCHIVED, stamp="archived_at"),
    SaveAction.UNARCHIVE: TransitionRule(status=SaveStatus.UNREAD, clear="archived_at"),
    SaveAction.FAVORITE: TransitionRule(favorite=True, stamp="favorited_at", stamp_on_change_only=True),
    SaveAction.UNFAVORITE: TransitionRule(favorite=False, clear="favorited_at"),
    SaveAction.DELETE: TransitionRule(status=SaveStatus.DELETED, stamp="deleted_at"),
    # No prior status or timestamp is restored.
    SaveAction.UNDELETE: TransitionRule(status=SaveStatus.UNREAD, clear="deleted_at"),
}

# Entity timestamp -> list column. deleted_at has no column; it mirrors time_updated.
TIMESTAMP_COLUMNS: dict[str, str | None] = {
    "archived_at": "time_read",
    "favorited_at": "time_favorited",
    "deleted_at": None,
}


def rule_for(action: SaveAction) -> TransitionRule:
    return TRANSITION_RULES[SaveAction(action)]


def in_target_state(item: SavedItem, rule: TransitionRule) -> bool:
    if rule.status is not None and item.status is not rule.status:
        return False
    if rule.favorite is not None and item.is_favorite != rule.favorite:
        return False
    return True


def apply_transition(item: SavedItem, action: SaveAction, timestamp: datetime) -> SavedItem:
    """Return a copy of ``item`` after ``action`` happened at ``timestamp``."""
    rule = rule_for(action)
    updated_at = max(item.updated_at, timestamp)
    changes: dict[str, object] = {"updated_at": updated_at}

    if rule.stamp is not None and not (rule.stamp_on_change_only and in_target_state(item, rule)):
        changes[rule.stamp] = timestamp if TIMESTAMP_COLUMNS[rule.stamp] else updated_at
    if rule.clear is not None:
        changes[rule.clear] = None
    if rule.status is not None:
        changes["status"] = rule.status
        # archived_at and deleted_at only exist in their own status.
        if rule.status is not SaveStatus.ARCHIVED:
            changes["archived_at"] = None
        if rule.status is not SaveStatus.DELETED:
            changes["deleted_at"] = None
    if rule.favorite is not None:
        changes["is_favorite"] = rule.favorite

    return replace(item, **changes)
