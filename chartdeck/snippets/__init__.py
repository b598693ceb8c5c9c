"""Snippets: stored chart definitions with a draft/published lifecycle."""
