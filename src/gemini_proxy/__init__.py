"""OpenAI-compatible chat-completions proxy for the Google Code Assist API."""

__version__ = "0.1.0"
