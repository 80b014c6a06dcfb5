"""Test suite for the carrierlab testing engine.

Organized into three categories:

1. core/: Unit tests for core domain logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - Tests against real SQLite files, sockets or mocked HTTP transports
   - Validates adapter behavior and error handling

3. fakes/: Port implementations for testing
   - In-memory SampleSourcePort, ResultStorePort, BroadcasterPort, etc.
   - Used by core unit tests
"""
