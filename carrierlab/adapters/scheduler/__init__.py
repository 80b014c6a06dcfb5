"""Scheduler adapters for driving the engine's process lifetime.

- Daemon (asyncio event loop with signal handling and periodic maintenance)
"""
