# Routes package __init__.py - re-exports routers for main.py convenience
from .session import router as session_router
from .verses import router as verses_router
from .practice import router as practice_router
from .stats import router as stats_router

__all__ = ['session_router', 'verses_router', 'practice_router', 'stats_router']
