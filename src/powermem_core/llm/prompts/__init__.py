"""Prompt templates for the memory pipeline."""

from .manager import PromptManager

__all__ = ["PromptManager"]
