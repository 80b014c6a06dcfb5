"""Exception types raised by the lifecycle engine and front-end."""


class LifecycleError(Exception):
    """Base class for lifecycle engine errors."""


class AdmissionError(LifecycleError):
    """A test could not be admitted. No engine state was changed."""

    def __init__(self, test_id: str, message: str):
        super().__init__(message)
        self.test_id = test_id


class DuplicateTestError(AdmissionError):
    """The test ID is already resident or queued."""

    def __init__(self, test_id: str):
        super().__init__(test_id, f"Test {test_id} is already running or queued")


class QueueFullError(AdmissionError):
    """The admission queue is at capacity."""

    def __init__(self, test_id: str, max_queue_size: int):
        super().__init__(
            test_id,
            f"Cannot queue test {test_id}: queue is full ({max_queue_size} tests)",
        )
        self.max_queue_size = max_queue_size


class TestActiveError(LifecycleError):
    """The operation needs a finished test but this one is running or queued."""

    __test__ = False

    def __init__(self, test_id: str, message: str | None = None):
        super().__init__(message or f"Test {test_id} is still running or queued")
        self.test_id = test_id


class InvalidTestConfigError(ValueError):
    """Kind-specific parameters are missing or out of range."""
