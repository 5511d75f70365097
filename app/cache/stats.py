from threading import Lock


class CacheStats:
    """
    Counters for the task cache, shared by every request in a worker.

    Swallowed cache failures are counted here so a degraded cache shows up
    on /health without changing request outcomes.
    """

    _FIELDS = (
        "hits",
        "misses",
        "read_errors",
        "write_errors",
        "delete_errors",
    )

    def __init__(self):
        self._lock = Lock()
        self._counts = dict.fromkeys(self._FIELDS, 0)

    def incr(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def __getitem__(self, name: str) -> int:
        return self._counts[name]

    def snapshot(self) -> dict:
        """Get cache statistics including hit rate and total failures."""
        with self._lock:
            counts = dict(self._counts)

        lookups = counts["hits"] + counts["misses"]
        return {
            **counts,
            "failures": counts["read_errors"]
            + counts["write_errors"]
            + counts["delete_errors"],
            "hit_rate": counts["hits"] / lookups if lookups > 0 else 0,
        }
