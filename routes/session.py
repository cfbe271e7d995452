from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from routes.deps import active_context, get_context
from services.context import AppContext

router = APIRouter()


class SignIn(BaseModel):
    token: str
    email: Optional[str] = None


@router.post("/sign-in")
async def sign_in(data: SignIn, context: AppContext = Depends(get_context)):
    """Store the session token handed over by the sign-in flow."""
    try:
        context.auth.sign_in(data.token, data.email)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    context.guardian.reset()
    context.scheduler.spawn(context.points.sync_longest_streak)
    context.scheduler.spawn(context.verses.load_verses)
    context.scheduler.spawn(context.verses.sync_pending_changes)
    return context.guardian.status()


@router.post("/activity")
async def activity(context: AppContext = Depends(active_context)):
    return context.guardian.status()


@router.get("/status")
async def session_status(context: AppContext = Depends(get_context)):
    status = context.guardian.status()
    status["email"] = context.auth.email
    return status


@router.post("/continue")
async def continue_session(context: AppContext = Depends(active_context)):
    context.guardian.continue_session()
    return context.guardian.status()


@router.post("/sign-out")
async def sign_out(context: AppContext = Depends(get_context)):
    """Flush what can be flushed, then clear the session."""
    await context.guardian.sign_out_now()
    return context.guardian.status()
