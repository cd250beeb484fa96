import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Allows any number of concurrent readers, or a single writer.

    A writer that is waiting blocks new readers from entering, so that frequent reads of the store
    or of a status value cannot starve the data source thread that needs to update it. Neither
    side is reentrant.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing or self._writers_waiting > 0:
                self._cond.wait()
            self._readers += 1
        try:
            yield self
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers > 0:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield self
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()
