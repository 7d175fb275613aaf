from fastapi import APIRouter, Depends, Request

from app.auth.dependencies import CurrentUser, get_current_user

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> dict:
    return {"success": True, "message": "Server is running"}


@router.get("/system/presence")
def presence_snapshot(
    request: Request,
    _current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    """User ids with a live connection on this process."""
    presence = request.app.state.dispatcher.presence
    return {
        "success": True,
        "onlineUserIds": [str(user_id) for user_id in presence.online_user_ids()],
    }
