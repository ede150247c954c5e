from .common import HTTPAdapter
from .gemini import GeminiAdapter
from .ollama import OllamaAdapter
from .openai import OpenAIAdapter

__all__ = ["HTTPAdapter", "GeminiAdapter", "OllamaAdapter", "OpenAIAdapter"]
