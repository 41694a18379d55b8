"""Completion-service clients."""

from .completions_client import CompletionsClient, OpenAICompletions, build_client, get_openai_completion

__all__ = ["CompletionsClient", "OpenAICompletions", "build_client", "get_openai_completion"]
