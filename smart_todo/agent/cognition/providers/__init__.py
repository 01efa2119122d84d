from smart_todo.agent.cognition.providers.factory import build_llm_client
from smart_todo.agent.cognition.providers.ollama import OllamaClient
from smart_todo.agent.cognition.providers.openai import OpenAIClient

__all__ = ["OllamaClient", "OpenAIClient", "build_llm_client"]
