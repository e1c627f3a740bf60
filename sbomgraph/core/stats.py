import threading
import time
from dataclasses import dataclass
from dataclasses import field


@dataclass
class BaseStats:
    start_time: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time


@dataclass
class BuildStats(BaseStats):
    """Counters collected while walking raw dependency references."""
    references: int = 0
    memo_hits: int = 0
    packages: int = 0
    duplicate_packages: int = 0

    def inc_references(self, count: int = 1):
        with self._lock:
            self.references += count

    def inc_memo_hits(self, count: int = 1):
        with self._lock:
            self.memo_hits += count

    def inc_packages(self, count: int = 1):
        with self._lock:
            self.packages += count

    def inc_duplicate_packages(self, count: int = 1):
        with self._lock:
            self.duplicate_packages += count
