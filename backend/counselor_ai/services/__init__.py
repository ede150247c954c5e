from .ai_provider import AIHealthMonitor, AIProviderService

__all__ = [
    "AIProviderService",
    "AIHealthMonitor"
]
