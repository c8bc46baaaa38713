# fusion_engine/utils/preprocess.py

from collections import deque


def clamp(x, min_val=0.0, max_val=1.0):
    """Pin a scalar into [min_val, max_val]."""
    return max(min_val, min(max_val, x))


class RollingWindow:
    """Fixed-size window of recent magnitudes with a running mean."""

    def __init__(self, size):
        self.values = deque(maxlen=size)
        self._total = 0.0

    def __len__(self):
        return len(self.values)

    def push(self, value):
        if len(self.values) == self.values.maxlen:
            self._total -= self.values[0]
        self.values.append(value)
        self._total += value

    def mean(self):
        if not self.values:
            return 0.0
        return self._total / len(self.values)

    def latest(self):
        return self.values[-1] if self.values else None


class SensorGroup:
    """
    Short and long rolling windows for one sensor group
    (accelerometer, gyroscope, magnetometer).
    """

    def __init__(self, name, short_size=50, long_size=300):
        self.name = name
        self.short = RollingWindow(short_size)
        self.long = RollingWindow(long_size)

    def push(self, magnitude):
        self.short.push(magnitude)
        self.long.push(magnitude)

    @property
    def has_samples(self):
        return len(self.short) > 0

    def relative_deviation(self):
        """|short mean - long mean| / long mean, with a zero mean treated as 1."""
        if not self.has_samples:
            return 0.0
        average = self.long.mean() or 1.0
        return abs(self.short.mean() - average) / abs(average)
