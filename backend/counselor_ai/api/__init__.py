from .v1 import ai_router, logs_router

__all__ = ["ai_router", "logs_router"]
