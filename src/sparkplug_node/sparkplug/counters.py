"""
Sequence and session counters owned by the node engine.
"""
import threading

from .constants import SEQUENCE_MODULUS


class SequenceCounter:
    """
    Cyclic 0..255 message sequence counter.

    Every operation holds an internal lock, so concurrent callers never
    observe a duplicated or skipped value.
    """

    def __init__(self, modulus: int = SEQUENCE_MODULUS):
        """
        Initialize the counter at zero.

        Args:
            modulus: Value at which the counter wraps back to zero
        """
        self.modulus = modulus
        self._value = 0
        self._lock = threading.Lock()

    def current(self) -> int:
        """Return the value the next message will carry."""
        with self._lock:
            return self._value

    def next(self) -> int:
        """Return the current value and advance by one, wrapping at the modulus."""
        with self._lock:
            value = self._value
            self._value = (value + 1) % self.modulus  # 255 -> 0
            return value

    def reset(self) -> None:
        """Set the counter back to zero (session start)."""
        with self._lock:
            self._value = 0


class SessionState:
    """
    Session number and connection liveness of the edge node.

    The session number increases exactly once per connect and is never
    touched by message traffic. The first session is number 0.
    """

    def __init__(self):
        """Initialize with no session begun and disconnected."""
        # -1 so the first connect yields session 0
        self._session_number = -1
        self._connected = False
        self._lock = threading.Lock()

    def current_session(self) -> int:
        """Return the current session number (-1 before the first connect)."""
        with self._lock:
            return self._session_number

    def upcoming_session(self) -> int:
        """Return the number the next begin_new_session() call will produce."""
        with self._lock:
            return self._session_number + 1

    def begin_new_session(self) -> int:
        """Increment and return the session number, marking the node connected."""
        with self._lock:
            self._session_number += 1
            self._connected = True
            return self._session_number

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def mark_disconnected(self) -> None:
        with self._lock:
            self._connected = False
