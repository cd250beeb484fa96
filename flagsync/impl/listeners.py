import queue
from threading import Lock, Thread
from typing import Any, Callable, List, Optional

from flagsync.impl.util import log

_STOP = object()


class Listeners:
    """
    A set of callbacks that each receive every value passed to ``notify()``.

    Without a ``dispatcher_name``, callbacks run on the notifying thread before ``notify()`` returns.
    With one, values are queued and delivered in order on a daemon thread of that name, started on
    first use, so the notifier never waits for a slow callback. ``close()`` ends that thread once it
    has delivered what was already queued. A callback that raises is logged and the others still
    run.
    """

    def __init__(self, dispatcher_name: Optional[str] = None):
        self.__callbacks: List[Callable] = []
        self.__lock = Lock()
        self.__dispatcher_name = dispatcher_name
        self.__pending: Optional[queue.Queue] = None
        self._dispatcher_thread: Optional[Thread] = None

    def has_listeners(self) -> bool:
        with self.__lock:
            return bool(self.__callbacks)

    def add(self, listener: Callable):
        with self.__lock:
            self.__callbacks.append(listener)

    def remove(self, listener: Callable):
        with self.__lock:
            if listener in self.__callbacks:
                self.__callbacks.remove(listener)

    def notify(self, value: Any):
        if self.__dispatcher_name is None:
            self._deliver(value)
        else:
            self.__dispatch_queue().put(value)

    def __dispatch_queue(self) -> queue.Queue:
        with self.__lock:
            if self.__pending is None:
                self.__pending = queue.Queue()
                self._dispatcher_thread = Thread(target=self._run_dispatcher, args=(self.__pending,), name=self.__dispatcher_name, daemon=True)
                self._dispatcher_thread.start()
            return self.__pending

    def close(self):
        with self.__lock:
            pending, self.__pending = self.__pending, None
        if pending is not None:
            pending.put(_STOP)

    def _deliver(self, value: Any):
        with self.__lock:
            callbacks = list(self.__callbacks)
        for callback in callbacks:
            try:
                callback(value)
            except Exception as e:
                log.exception("Unexpected error in listener for %s: %s", type(value).__name__, e)

    def _run_dispatcher(self, pending: queue.Queue):
        for value in iter(pending.get, _STOP):
            self._deliver(value)
