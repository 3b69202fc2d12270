"""Fixed-capacity history buffers for chart rendering."""

from collections import deque
from collections.abc import Iterator

DEFAULT_CAPACITY = 60


class HistoryBuffer:
    """
    Ring buffer of the last N metric values.

    Starts full of zeros so charts draw a full-width baseline from the first
    tick. Pushing past capacity evicts the oldest value.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._values: deque[float] = deque([0.0] * capacity, maxlen=capacity)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(list(self._values))

    @property
    def capacity(self) -> int:
        """Maximum number of values kept."""
        return self._values.maxlen or 0

    def push(self, value: float) -> None:
        """Append a value, dropping the oldest one."""
        self._values.append(float(value))

    def as_sequence(self) -> list[float]:
        """Return a copy of the values, oldest first."""
        return list(self._values)
