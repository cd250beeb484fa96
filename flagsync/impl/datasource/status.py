import json
import time
from threading import Lock
from typing import Callable, Mapping, Optional

import urllib3
from ld_eventsource.errors import HTTPStatusError

from flagsync.impl.listeners import Listeners
from flagsync.impl.rwlock import ReadWriteLock
from flagsync.impl.util import (InvalidDataError, StoreUpdateError,
                                UnsuccessfulResponseException,
                                http_error_description, log)
from flagsync.interfaces import (DataSourceErrorInfo, DataSourceErrorKind,
                                 DataSourceState, DataSourceStatus,
                                 DataSourceStatusProvider,
                                 DataSourceUpdateSink, DataStoreStatusProvider,
                                 FeatureStore, ItemDescriptor)
from flagsync.versioned_data_kind import VersionedDataKind


class DataSourceUpdateSinkImpl(DataSourceUpdateSink):
    """
    The single writer of the data source status, and the only path by which data sources write to
    the store.

    Store writes are serialized here, so that a delta and a full data set can never be applied to
    the store at the same time regardless of which thread they arrive on. A store failure is
    recorded as a ``STORE_ERROR`` status and re-raised as :class:`StoreUpdateError`.
    """

    def __init__(self, store: FeatureStore, status_listeners: Listeners, data_store_status_provider: Optional[DataStoreStatusProvider] = None):
        self.__store = store
        self.__status_listeners = status_listeners
        self.__data_store_status_provider = data_store_status_provider

        self.__write_lock = Lock()
        self.__lock = ReadWriteLock()
        self.__status = DataSourceStatus(DataSourceState.INITIALIZING, time.time(), None)

    @property
    def status(self) -> DataSourceStatus:
        with self.__lock.read():
            return self.__status

    @property
    def data_store_status_provider(self) -> Optional[DataStoreStatusProvider]:
        return self.__data_store_status_provider

    @property
    def store(self) -> FeatureStore:
        return self.__store

    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, ItemDescriptor]]):
        self.__monitor_store_update(lambda: self.__store.init(all_data))

    def upsert(self, kind: VersionedDataKind, key: str, item: ItemDescriptor) -> bool:
        return self.__monitor_store_update(lambda: self.__store.upsert(kind, key, item))

    def update_status(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        status_to_broadcast = None

        with self.__lock.write():
            old_status = self.__status

            # OFF is terminal for interruptions; a write that was in flight during stop() may still fail
            if new_state == DataSourceState.INTERRUPTED and old_status.state in (DataSourceState.INITIALIZING, DataSourceState.OFF):
                new_state = old_status.state

            if new_state == old_status.state and new_error is None:
                return

            self.__status = DataSourceStatus(
                new_state,
                old_status.since if new_state == old_status.state else time.time(),
                old_status.error if new_error is None else new_error,
            )

            status_to_broadcast = self.__status

        self.__status_listeners.notify(status_to_broadcast)

    def __monitor_store_update(self, fn: Callable):
        try:
            with self.__write_lock:
                return fn()
        except Exception as e:
            log.error("Failed to update data store: %s", e)
            error_info = DataSourceErrorInfo(DataSourceErrorKind.STORE_ERROR, 0, time.time(), str(e))
            self.update_status(DataSourceState.INTERRUPTED, error_info)
            raise StoreUpdateError(str(e)) from e


class DataSourceStatusProviderImpl(DataSourceStatusProvider):
    def __init__(self, listeners: Listeners, update_sink: DataSourceUpdateSinkImpl):
        self.__listeners = listeners
        self.__update_sink = update_sink

    @property
    def status(self) -> DataSourceStatus:
        return self.__update_sink.status

    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        self.__listeners.remove(listener)


def error_info_from_exception(error: Exception) -> DataSourceErrorInfo:
    """
    Classifies a failure seen by a data source into one of the :class:`DataSourceErrorKind` values.
    """
    now = time.time()
    if isinstance(error, (HTTPStatusError, UnsuccessfulResponseException)):
        return DataSourceErrorInfo(DataSourceErrorKind.ERROR_RESPONSE, error.status, now, http_error_description(error.status))
    if isinstance(error, (InvalidDataError, json.JSONDecodeError)):
        return DataSourceErrorInfo(DataSourceErrorKind.INVALID_DATA, 0, now, str(error))
    if isinstance(error, StoreUpdateError):
        return DataSourceErrorInfo(DataSourceErrorKind.STORE_ERROR, 0, now, str(error))
    if isinstance(error, (OSError, urllib3.exceptions.HTTPError)):
        return DataSourceErrorInfo(DataSourceErrorKind.NETWORK_ERROR, 0, now, str(error))
    return DataSourceErrorInfo(DataSourceErrorKind.UNKNOWN, 0, now, str(error))
