import threading


class ConnectionLimiter:
    """Caps the number of sessions that may run at once."""

    def __init__(self, max_connections: int = 1000):
        self.max_connections = max_connections
        self.active = 0
        self.lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Reserve a session slot; False when the limit is reached."""
        with self.lock:
            if self.max_connections and self.active >= self.max_connections:
                return False
            self.active += 1
            return True

    def release(self) -> None:
        with self.lock:
            if self.active > 0:
                self.active -= 1
