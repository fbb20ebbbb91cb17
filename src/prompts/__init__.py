"""Prompt templates for LLM interactions."""

from src.prompts.assistant import DEFAULT_SYSTEM_PROMPT, load_system_prompt

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "load_system_prompt",
]
