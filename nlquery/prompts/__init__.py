"""Markdown prompt templates rendered with Jinja2."""

from nlquery.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
