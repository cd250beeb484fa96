from threading import Event, Lock
from typing import Optional


class ReadySignal:
    """
    A completion signal that is resolved at most once, either as succeeded or as failed, and can be
    waited on or inspected any number of times.

    Data sources return one of these from ``start()``; it is resolved the first time the store is
    initialized, or when the data source gives up or is stopped.
    """

    def __init__(self):
        self.__event = Event()
        self.__lock = Lock()
        self.__succeeded: Optional[bool] = None

    def resolve(self, succeeded: bool) -> bool:
        """
        Resolves the signal if it has not already been resolved.

        :param succeeded: whether the data source reached a valid state
        :return: True if this call resolved the signal, False if it had already been resolved
        """
        with self.__lock:
            if self.__event.is_set():
                return False
            self.__succeeded = succeeded
            self.__event.set()
            return True

    def is_set(self) -> bool:
        return self.__event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until the signal is resolved or the timeout elapses.

        :return: True if the signal has been resolved
        """
        return self.__event.wait(timeout)

    @property
    def succeeded(self) -> Optional[bool]:
        """
        True or False once resolved; None while still pending.
        """
        with self.__lock:
            return self.__succeeded
