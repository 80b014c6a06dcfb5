"""Broadcaster adapters for fanning test events out to live subscribers."""
