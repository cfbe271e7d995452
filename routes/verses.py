from fastapi import APIRouter, Depends

from models.verse import StatusUpdate, VerseCreate
from routes.deps import active_context, get_context
from services.context import AppContext
from utils.errors import VerseCoachError, to_http_exception

router = APIRouter()


def _verse_row(verse, updating) -> dict:
    row = verse.model_dump(mode="json")
    row["is_updating"] = verse.reference in updating
    return row


@router.get("/")
async def list_verses(context: AppContext = Depends(active_context)):
    updating = context.verses.updating_references
    return [_verse_row(verse, updating) for verse in context.verses.list_verses()]


@router.post("/", status_code=201)
async def add_verse(data: VerseCreate, context: AppContext = Depends(active_context)):
    try:
        verse = context.verses.add_verse(data)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    return _verse_row(verse, context.verses.updating_references)


@router.put("/{reference}/status")
async def update_status(reference: str, data: StatusUpdate, context: AppContext = Depends(active_context)):
    try:
        verse = context.verses.update_status(reference, data.status)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    return _verse_row(verse, context.verses.updating_references)


@router.delete("/{reference}")
async def delete_verse(reference: str, context: AppContext = Depends(active_context)):
    try:
        context.verses.delete_verse(reference)
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    context.practice.forget(reference)
    return {"deleted": reference}


@router.get("/pending")
async def pending_changes(context: AppContext = Depends(get_context)):
    """Unsynced verse changes, for an "unsaved changes" indicator."""
    try:
        changes = context.ledger.get_unsynced_changes()
    except VerseCoachError as exc:
        raise to_http_exception(exc)
    context.has_unsaved_changes = bool(changes)
    return {
        "has_unsaved_changes": bool(changes),
        "count": len(changes),
        "changes": [change.model_dump(mode="json") for change in changes],
    }


@router.post("/sync")
async def sync_verses(context: AppContext = Depends(active_context)):
    report = await context.verses.sync_pending_changes()
    context.poll_unsaved_changes()
    return {
        "synced": report.synced,
        "remaining": report.remaining,
        "conflicts": report.conflicts,
        "error": report.error,
        "skipped": report.skipped,
    }


@router.post("/reload")
async def reload_verses(context: AppContext = Depends(active_context)):
    warning = await context.verses.load_verses()
    return {"warning": warning, "count": len(context.verses.list_verses())}
