"""
Error types raised by the engine.

`InvalidEvent` subclasses `ValueError` so the HTTP layer can keep mapping
`ValueError` to a 400, the same way it maps other bad input.
`CapacityInvariantViolation` subclasses `AssertionError`: it signals a
bug in the store's trim logic and must never be caught and ignored.
"""


class InvalidEvent(ValueError):
    """A malformed event rejected at the ingestion boundary."""


class CapacityInvariantViolation(AssertionError):
    """The event store holds more events than its configured capacity."""

    def __init__(self, size: int, capacity: int):
        super().__init__(f"Event store size {size} exceeds capacity {capacity}")
        self.size = size
        self.capacity = capacity
