from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routes.deps import active_context, get_context
from services.context import AppContext
from utils.errors import NotFoundError, TransientSyncError, to_http_exception

router = APIRouter()


class CurrentVerse(BaseModel):
    reference: str


@router.get("/")
async def get_stats(context: AppContext = Depends(get_context)):
    """Local view of points and streaks; refreshed from the server in the background."""
    snapshot = context.points.snapshot()
    snapshot["has_unshared_achievement"] = context.achievements.has_unshared()
    return snapshot


@router.post("/refresh")
async def refresh_stats(context: AppContext = Depends(active_context)):
    refreshed = await context.points.refresh_points(force=True)
    if not refreshed:
        raise to_http_exception(TransientSyncError("Could not refresh points from the server"))
    return context.points.snapshot()


@router.post("/current-verse")
async def set_current_verse(data: CurrentVerse, context: AppContext = Depends(active_context)):
    streak = context.points.set_current_verse(data.reference)
    return {"current_verse_reference": data.reference, "current_verse_streak": streak}


@router.get("/achievement")
async def get_achievement(context: AppContext = Depends(get_context)):
    record = context.achievements.get_pending()
    return {"achievement": record.model_dump() if record else None}


@router.post("/achievement/share")
async def share_achievement(context: AppContext = Depends(active_context)):
    record = context.achievements.mark_shared()
    if record is None:
        raise to_http_exception(NotFoundError("No achievement to share"))
    return {"achievement": record.model_dump()}


@router.delete("/achievement")
async def dismiss_achievement(context: AppContext = Depends(get_context)):
    record = context.achievements.consume()
    return {"achievement": record.model_dump() if record else None}
