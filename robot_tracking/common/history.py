"""
Bounded history of timestamped joint estimates.

The fusion controller records the joint filter estimate after every
encoder update so that a delayed depth frame can be compared with the
joint estimate at the frame's capture time.
"""

import threading
from collections import deque

import numpy as np

from .angles import normalize_angle


class StateHistory:
    """
    Ring buffer of (timestamp, state) pairs in non-decreasing time order.

    Parameters
    ----------
    maxlen : int
        Number of entries kept
    continuous : np.ndarray of bool, optional
        Joints interpolated on the circle
    """

    def __init__(self, maxlen, continuous=None):
        self._entries = deque(maxlen=maxlen)
        self._continuous = None if continuous is None else np.asarray(continuous, dtype=bool)
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def append(self, timestamp, state):
        """
        Record a state. Entries older than the newest one are ignored.

        Returns
        -------
        bool
            True if the entry was stored
        """
        state = np.array(state, dtype=float)
        with self._lock:
            if self._entries and timestamp < self._entries[-1][0]:
                return False
            self._entries.append((float(timestamp), state))
        return True

    def latest(self):
        with self._lock:
            if not self._entries:
                return None
            timestamp, state = self._entries[-1]
        return timestamp, state.copy()

    def at(self, timestamp):
        """
        Interpolate the recorded state at a given time.

        Times outside the recorded window are clamped to the oldest or
        newest entry.

        Parameters
        ----------
        timestamp : float
            Query time

        Returns
        -------
        np.ndarray or None
            Interpolated state, None if the history is empty
        """
        with self._lock:
            if not self._entries:
                return None
            times = np.fromiter((t for t, _ in self._entries), dtype=float,
                                count=len(self._entries))
            states = np.array([s for _, s in self._entries])

        if timestamp <= times[0]:
            return states[0].copy()
        if timestamp >= times[-1]:
            return states[-1].copy()

        k = int(np.searchsorted(times, timestamp, side='right'))
        t0, t1 = times[k - 1], times[k]
        s0, s1 = states[k - 1], states[k]
        if t1 <= t0:
            return s1.copy()

        alpha = (timestamp - t0) / (t1 - t0)
        delta = s1 - s0
        if self._continuous is not None and np.any(self._continuous):
            delta[self._continuous] = normalize_angle(delta[self._continuous])
        state = s0 + alpha * delta
        if self._continuous is not None and np.any(self._continuous):
            state[self._continuous] = normalize_angle(state[self._continuous])
        return state
