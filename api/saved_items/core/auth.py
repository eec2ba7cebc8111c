from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class UserContext:
    """Identity of the caller, as forwarded by the gateway."""

    user_id: str
    api_id: str = "0"

    @property
    def user_key(self) -> int:
        return int(self.user_id)

    @property
    def api_key(self) -> int:
        return int(self.api_id) if self.api_id.isascii() and self.api_id.isdigit() else 0


def parse_user_header(raw: str | None) -> str | None:
    if raw is None:
        return None
    stripped = raw.strip()
    if not (stripped.isascii() and stripped.isdigit()) or int(stripped) == 0:
        return None
    return stripped
