from threading import Lock
from typing import Callable

from flagsync.impl.listeners import Listeners
from flagsync.interfaces import (DataStoreStatus, DataStoreStatusProvider,
                                 DataStoreUpdateSink)


class DataStoreUpdateSinkImpl(DataStoreUpdateSink):
    """
    Holds the latest store health and broadcasts changes to it. Until a monitored store reports
    otherwise, the store is assumed to be available and current.
    """

    def __init__(self, listeners: Listeners):
        self.__listeners = listeners
        self.__status_lock = Lock()
        self.__current = DataStoreStatus(True, False)

    @property
    def listeners(self) -> Listeners:
        return self.__listeners

    def status(self) -> DataStoreStatus:
        with self.__status_lock:
            return self.__current

    def update_status(self, status: DataStoreStatus):
        with self.__status_lock:
            changed = status != self.__current
            self.__current = status
        if changed:
            self.__listeners.notify(status)


class DataStoreStatusProviderImpl(DataStoreStatusProvider):
    def __init__(self, store, update_sink: DataStoreUpdateSinkImpl):
        self.__store = store
        self.__update_sink = update_sink

    @property
    def status(self) -> DataStoreStatus:
        return self.__update_sink.status()

    def is_monitoring_enabled(self) -> bool:
        return self.__store.is_monitoring_enabled()

    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        self.__update_sink.listeners.remove(listener)
