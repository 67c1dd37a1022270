"""Async command handlers, one per resource/action pair."""
