import time
from threading import Event, Thread
from typing import Callable

from flagsync.impl.util import log


class RepeatingTask:
    """
    Runs a callable over and over on a daemon thread of its own.

    Runs are spaced ``interval`` seconds apart measured from the start of each run, and never
    overlap: a run that takes longer than the interval is followed immediately by the next one.
    Exceptions from the callable are logged and do not end the loop.
    """

    def __init__(self, label: str, interval: float, initial_delay: float, callable: Callable):
        self.__label = label
        self.__interval = interval
        self.__initial_delay = initial_delay
        self.__callable = callable
        self.__stopped = Event()
        self.__thread = Thread(target=self.__loop, name="%s.repeating" % label, daemon=True)

    def start(self):
        self.__thread.start()

    def stop(self):
        """
        Ends the loop after the current run, if any. A stopped task cannot be started again. This
        may be called from within the callable.
        """
        self.__stopped.set()

    @property
    def stopped(self) -> bool:
        return self.__stopped.is_set()

    def __loop(self):
        if self.__stopped.wait(self.__initial_delay):
            return
        while not self.__stopped.is_set():
            started = time.time()
            try:
                self.__callable()
            except Exception as e:
                log.exception("Unexpected exception in %s: %s", self.__label, e)
            remaining = self.__interval - (time.time() - started)
            if self.__stopped.wait(max(remaining, 0)):
                return
