from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routes.deps import active_context
from services.context import AppContext
from utils.errors import VerseCoachError, to_http_exception

router = APIRouter()


class Guess(BaseModel):
    text: str


class Paste(BaseModel):
    text: str


class ResetRequest(BaseModel):
    clear_progress: bool = False


class MasteryAttempt(BaseModel):
    text: str


@router.post("/flush")
async def flush(context: AppContext = Depends(active_context)):
    """Send queued word events now instead of waiting for the debounce."""
    delivered = await context.dispatcher.flush()
    return {
        "delivered": delivered,
        "pending": context.dispatcher.pending_count,
        "error": context.dispatcher.last_error,
    }


@router.get("/{reference}")
async def get_practice(reference: str, context: AppContext = Depends(active_context)):
    try:
        session = context.practice.get_session(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    return context.practice.feedback(session)


@router.post("/{reference}/start")
async def start(reference: str, context: AppContext = Depends(active_context)):
    try:
        return context.practice.start(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/guess")
async def guess(reference: str, data: Guess, context: AppContext = Depends(active_context)):
    try:
        return context.practice.submit_guess(reference, data.text)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/hint")
async def hint(reference: str, context: AppContext = Depends(active_context)):
    try:
        return context.practice.show_hint(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/reset")
async def reset(reference: str, data: ResetRequest | None = None, context: AppContext = Depends(active_context)):
    clear_progress = data.clear_progress if data else False
    try:
        return context.practice.reset(reference, clear_progress=clear_progress)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/paste")
async def paste(reference: str, data: Paste, context: AppContext = Depends(active_context)):
    """Clipboard gate: multi-word pastes are refused before they reach the guess box."""
    try:
        context.practice.check_paste(data.text)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    return {"allowed": True, "text": data.text.strip()}


@router.post("/{reference}/mastery/enter")
async def enter_mastery(reference: str, context: AppContext = Depends(active_context)):
    try:
        return await context.practice.enter_mastery(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/mastery/exit")
async def exit_mastery(reference: str, context: AppContext = Depends(active_context)):
    try:
        return context.practice.exit_mastery(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)


@router.post("/{reference}/mastery/attempt")
async def mastery_attempt(reference: str, data: MasteryAttempt, context: AppContext = Depends(active_context)):
    try:
        return await context.practice.submit_mastery_attempt(reference, data.text)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
