"""Command-line interface adapters.

Provides CLI commands for managing carrierlab tests:
- start / stop: Submit or stop a test
- status / list / active: Inspect stored and running tests
- stats: Engine statistics
- schedule / unschedule / schedules: Recurring tests
"""
