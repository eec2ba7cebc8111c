from fastapi import Header, HTTPException, status

from saved_items.core.auth import UserContext, parse_user_header


async def get_user_context(
    userid: str | None = Header(default=None, alias="userid"),
    apiid: str | None = Header(default=None, alias="apiid"),
) -> UserContext:
    """Caller identity forwarded by the gateway; authentication happens upstream."""
    user_id = parse_user_header(userid)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="request requires a userid header")

    api_id = (apiid or "").strip() or "0"
    return UserContext(user_id=user_id, api_id=api_id)
