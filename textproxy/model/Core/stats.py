import statistics
import threading
import time
from collections import deque
from typing import Any, Dict


class ProxyStats:
    """
    Thread-safe counters shared by the sessions of one proxy server.

    Attributes:
        start_time (float): When the counters were created
        total_connections (int): Sessions started since creation
        active_connections (int): Sessions currently running
        traffic_sent (int): Bytes relayed from clients to upstreams
        traffic_received (int): Bytes relayed from upstreams to clients
        errors (int): Sessions that ended with an error
        response_times (deque): Durations of the last 1000 sessions, in ms
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.total_connections = 0
        self.active_connections = 0
        self.traffic_sent = 0
        self.traffic_received = 0
        self.errors = 0
        self.response_times = deque(maxlen=1000)

    def session_started(self) -> None:
        with self.lock:
            self.total_connections += 1
            self.active_connections += 1

    def session_finished(self, bytes_in: int, bytes_out: int, elapsed_ms: float, failed: bool = False) -> None:
        with self.lock:
            self.active_connections -= 1
            self.traffic_sent += bytes_in
            self.traffic_received += bytes_out
            self.response_times.append(elapsed_ms)
            if failed:
                self.errors += 1

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of the counters, with response-time aggregates."""
        with self.lock:
            times = list(self.response_times)
            data = {
                "uptime": int(time.time() - self.start_time),
                "total_connections": self.total_connections,
                "active_connections": self.active_connections,
                "traffic_sent": self.traffic_sent,
                "traffic_received": self.traffic_received,
                "errors": self.errors,
            }
        data["avg_response_ms"] = statistics.mean(times) if times else None
        data["min_response_ms"] = min(times) if times else None
        data["max_response_ms"] = max(times) if times else None
        return data


def format_bytes(num: float) -> str:
    for unit in ['bytes', 'KB', 'MB', 'GB', 'TB']:
        if num < 1024.0:
            return f"{num:.2f} {unit}"
        num /= 1024.0
    return f"{num:.2f} PB"
