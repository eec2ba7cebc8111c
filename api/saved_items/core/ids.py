import base64
import binascii
from collections.abc import Iterable


def encode_tag_id(name: str) -> str:
    """Opaque external id for a tag; tags are addressed by name internally."""
    return base64.urlsafe_b64encode(name.encode("utf-8")).decode("ascii")


def decode_tag_id(tag_id: str) -> str:
    padded = tag_id.strip() + "=" * (-len(tag_id.strip()) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise ValueError(f"invalid tag id: {tag_id}") from exc


def unique_ids(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for raw in ids:
        item_id = raw.strip()
        if item_id in seen:
            continue
        seen.add(item_id)
        result.append(item_id)
    return result


def parse_item_id(item_id: str) -> int | None:
    """Storage key for an item id, or None when it cannot name a row."""
    candidate = item_id.strip()
    if not (candidate.isascii() and candidate.isdigit()):
        return None
    value = int(candidate)
    # item_id is a signed bigint column
    if value <= 0 or value >= 2**63:
        return None
    return value


def canonical_item_id(item_id: str) -> str | None:
    """The id as storage reports it back (``" 010"`` -> ``"10"``)."""
    key = parse_item_id(item_id)
    return str(key) if key is not None else None
