from .ai import router as ai_router
from .logs import router as logs_router

__all__ = ["ai_router", "logs_router"]
