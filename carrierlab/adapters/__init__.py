"""External adapters for the carrierlab testing engine.

This package contains all external dependencies (SQLite, httpx, psutil,
HTTP servers, etc.) and provides implementations of the core port interfaces.

Adapter Organization:

- probes/: Sample sources (HTTP API probes, simulated radio probes, routing)
- store/: Adapters for test config and sample persistence (SQLite)
- broadcast/: In-process fan-out of live test events
- system/: Process resource readings for the performance monitor
- scheduler/: Adapters for driving the engine's lifetime (daemon)
- cli/: Command-line interface and management commands
- api/: HTTP JSON API for submitting and inspecting tests
"""
