from fastapi import Depends, Request

from services.context import AppContext
from utils.errors import AuthenticationError, to_http_exception


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def active_context(context: AppContext = Depends(get_context)) -> AppContext:
    """Context for user-driven calls: counts as activity and needs a signed-in session."""
    if not context.auth.is_authenticated:
        raise to_http_exception(AuthenticationError("Not signed in"))
    context.guardian.notify_activity()
    return context
