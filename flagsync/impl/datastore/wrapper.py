from threading import Lock
from typing import Callable, Optional

from flagsync.feature_store import _FeatureStoreDataSetSorter
from flagsync.impl.repeating_task import RepeatingTask
from flagsync.impl.util import log
from flagsync.interfaces import (DataStoreStatus, DataStoreUpdateSink,
                                 FeatureStore)

AVAILABILITY_CHECK_INTERVAL = 0.5


class FeatureStoreClientWrapper(FeatureStore):
    """Provides additional behavior around the configured store: sorting the data set for init(),
    and turning store failures into data store status updates.

    Status monitoring only happens if the wrapped store implements both ``is_monitoring_enabled()``
    (returning True) and ``is_available()``. In that case, the first failed operation publishes an
    "unavailable" status and starts polling ``is_available()``; once it returns True, an "available"
    status is published whose ``stale`` property is ``refresh_on_recovery``, telling the data
    source whether it must rewrite the full data set.
    """

    def __init__(self, store: FeatureStore, store_update_sink: DataStoreUpdateSink, refresh_on_recovery: bool = True):
        self.store = store
        self.__store_update_sink = store_update_sink
        self.__refresh_on_recovery = refresh_on_recovery
        self.__monitoring_enabled = self.is_monitoring_enabled()

        # Covers the following variables
        self.__lock = Lock()
        self.__last_available = True
        self.__poller: Optional[RepeatingTask] = None

    def init(self, all_data):
        return self.__wrapper(lambda: self.store.init(_FeatureStoreDataSetSorter.sort_all_collections(all_data)))

    def get(self, kind, key):
        return self.__wrapper(lambda: self.store.get(kind, key))

    def all(self, kind):
        return self.__wrapper(lambda: self.store.all(kind))

    def upsert(self, kind, key, item):
        return self.__wrapper(lambda: self.store.upsert(kind, key, item))

    @property
    def initialized(self) -> bool:
        return self.store.initialized

    def stop(self):
        with self.__lock:
            poller, self.__poller = self.__poller, None
        if poller is not None:
            poller.stop()

    def __wrapper(self, fn: Callable):
        try:
            return fn()
        except Exception:
            if self.__monitoring_enabled:
                self.__update_availability(False)
            raise

    def __update_availability(self, available: bool):
        with self.__lock:
            if available == self.__last_available:
                return
            self.__last_available = available

        if available:
            log.warning("Persistent store is available again")
            self.__store_update_sink.update_status(DataStoreStatus(True, self.__refresh_on_recovery))
            self.stop()
            return

        log.warning("Detected persistent store unavailability; updates will be lost until it recovers")
        self.__store_update_sink.update_status(DataStoreStatus(False, False))

        task = RepeatingTask("flagsync.check-availability", AVAILABILITY_CHECK_INTERVAL, 0, self.__check_availability)
        with self.__lock:
            self.__poller = task
        task.start()

    def __check_availability(self):
        try:
            if self.store.is_available():
                self.__update_availability(True)
        except Exception as e:
            log.error("Unexpected error from data store status function: %s", e)

    def is_monitoring_enabled(self) -> bool:
        """
        Determines whether the wrapped store supports status monitoring: it must provide an
        ``is_monitoring_enabled`` method that returns True, and an ``is_available`` method, because
        monitoring also requires knowing when the store has recovered.
        """
        monitoring_enabled = getattr(self.store, 'is_monitoring_enabled', None)
        if not callable(monitoring_enabled):
            return False

        if not callable(getattr(self.store, 'is_available', None)):
            return False

        return monitoring_enabled()
