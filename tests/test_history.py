"""Tests for the HistoryBuffer ring buffer."""

import pytest

from sysmonitor.history import DEFAULT_CAPACITY, HistoryBuffer


class TestHistoryBuffer:
    """Tests for HistoryBuffer."""

    def test_prefilled_with_zeros(self):
        """Test a new buffer is full of zeros."""
        buffer = HistoryBuffer()

        assert len(buffer) == DEFAULT_CAPACITY == 60
        assert buffer.as_sequence() == [0.0] * 60
        assert buffer.capacity == 60

    def test_push_three_values(self):
        """Test pushing three values leaves 57 zeros followed by them."""
        buffer = HistoryBuffer(60)

        for value in (10, 20, 30):
            buffer.push(value)

        assert buffer.as_sequence() == [0.0] * 57 + [10.0, 20.0, 30.0]

    def test_never_exceeds_capacity(self):
        """Test 100 pushes keep exactly the last 60 values in push order."""
        buffer = HistoryBuffer(60)

        for value in range(100):
            buffer.push(value)

        assert len(buffer) == 60
        assert buffer.as_sequence() == [float(v) for v in range(40, 100)]

    def test_as_sequence_returns_copy(self):
        """Test consumers cannot mutate the buffer through a read."""
        buffer = HistoryBuffer(3)
        values = buffer.as_sequence()
        values.append(99.0)

        assert buffer.as_sequence() == [0.0, 0.0, 0.0]

    def test_iteration(self):
        """Test iterating yields values oldest first."""
        buffer = HistoryBuffer(3)
        buffer.push(1)
        buffer.push(2)

        assert list(buffer) == [0.0, 1.0, 2.0]

    def test_custom_capacity(self):
        """Test a buffer with a custom capacity."""
        buffer = HistoryBuffer(5)
        for value in range(8):
            buffer.push(value)

        assert buffer.as_sequence() == [3.0, 4.0, 5.0, 6.0, 7.0]

    def test_invalid_capacity(self):
        """Test a capacity below 1 is rejected."""
        with pytest.raises(ValueError):
            HistoryBuffer(0)
