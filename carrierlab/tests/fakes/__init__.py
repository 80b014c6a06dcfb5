"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeSampleSource: Scriptable probe (delays, per-tick failures, setup failure)
- FakeResultStore: In-memory config/sample persistence with write tracking
- FakeBroadcaster: Captured events for assertion
- FakeTestManagementPort: Captured management operations
"""

from .broadcaster import FakeBroadcaster
from .management import FakeTestManagementPort
from .probes import FakeSampleSource
from .store import FakeResultStore

__all__ = [
    "FakeBroadcaster",
    "FakeResultStore",
    "FakeSampleSource",
    "FakeTestManagementPort",
]
