"""
Contracts shared by the data sources and their collaborators: the store they write to, the status
model they report to, and the store health feed they watch.

Implement these to plug in a different store, or to drive a data source from tests.
"""

from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from flagsync.impl.listeners import Listeners
from flagsync.impl.ready import ReadySignal

from .versioned_data_kind import VersionedDataKind


class ItemDescriptor:
    """
    A versioned item as it is held in a :class:`FeatureStore`. An item of ``None`` is a tombstone: it
    records that the item was deleted at ``version``, so that an update with a lower version
    arriving later cannot bring it back.
    """

    __slots__ = ['_version', '_item']

    def __init__(self, version: int, item: Optional[Any]):
        self._version = version
        self._item = item

    @staticmethod
    def deleted_item(version: int) -> 'ItemDescriptor':
        return ItemDescriptor(version, None)

    @property
    def version(self) -> int:
        return self._version

    @property
    def item(self) -> Optional[Any]:
        return self._item

    @property
    def deleted(self) -> bool:
        return self._item is None

    def __eq__(self, other) -> bool:
        return isinstance(other, ItemDescriptor) and self._version == other._version and self._item == other._item

    def __repr__(self) -> str:
        return "ItemDescriptor(version=%d, item=%r)" % (self._version, self._item)


class FeatureStore(metaclass=ABCMeta):
    """
    Interface for a versioned store of flags and segments. Implementations should permit
    concurrent access and updates.

    Updates are versioned: an item is only replaced if the incoming version is strictly greater than
    the version already stored for the same key, whether either of them is a real item or a
    tombstone. Equal or lower versions are ignored without error. These semantics let the store be
    kept consistent from update messages that may be received out of order.

    Any operation may raise if the underlying storage medium fails. A store that can detect its
    own outages may also implement ``is_monitoring_enabled()`` and ``is_available()``; see
    :class:`DataStoreStatusProvider`.
    """

    @abstractmethod
    def get(self, kind: VersionedDataKind, key: str) -> Optional[ItemDescriptor]:
        """
        Retrieves the item, or tombstone, stored for a key.

        :param kind: The kind of item to get
        :param key: The key of the item
        :return: the stored descriptor, or None if nothing at all is stored for this key
        """

    @abstractmethod
    def all(self, kind: VersionedDataKind) -> Mapping[str, ItemDescriptor]:
        """
        Retrieves every item and tombstone of a given kind.

        :param kind: The kind of items to get
        """

    @abstractmethod
    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, ItemDescriptor]]):
        """
        Replaces the entire contents of the store with the given data set, then marks the store as
        initialized. Implementations can assume that this data set is up to date: there is no need
        to compare versions with what was stored before.

        :param all_data: All items to be stored
        """

    @abstractmethod
    def upsert(self, kind: VersionedDataKind, key: str, item: ItemDescriptor) -> bool:
        """
        Updates or inserts the item for a key, if and only if ``item.version`` is greater than the
        version currently stored for that key. A deletion is an upsert of a tombstone.

        :param kind: The kind of item to update
        :param key: The key of the item
        :param item: The new item or tombstone
        :return: True if the store was changed
        """

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """
        Returns whether the store has been initialized with a full data set yet.
        """


class DataSourceState(Enum):
    """
    The lifecycle states of a data source.
    """

    INITIALIZING = 'initializing'
    """
    No full data set has been received yet. Recoverable errors while in this state do not change it.
    """

    VALID = 'valid'
    """
    A full data set has been written to the store and updates are being applied.
    """

    INTERRUPTED = 'interrupted'
    """
    Synchronization was working, then failed in a way that is being retried. The store keeps serving
    whatever it last received.
    """

    OFF = 'off'
    """
    Terminal: the data source was stopped, or gave up because its credentials were rejected.
    """


class DataSourceErrorKind(Enum):
    """
    Categories of failure reported in :class:`DataSourceErrorInfo`.
    """

    UNKNOWN = 'unknown'
    """
    Anything not covered by the other kinds, typically an unexpected exception.
    """

    NETWORK_ERROR = 'network_error'
    """
    The connection could not be made, or broke.
    """

    ERROR_RESPONSE = 'error_response'
    """
    The server answered with an HTTP error status; see ``status_code``.
    """

    INVALID_DATA = 'invalid_data'
    """
    A payload was not valid JSON, or did not have the expected shape.
    """

    STORE_ERROR = 'store_error'
    """
    The connection is fine but the data store failed or is unavailable, so it may be behind.
    """


@dataclass(frozen=True, eq=False)
class DataSourceErrorInfo:
    """
    One failure seen by a data source.

    Every failure gets its own instance, even an exact repeat of the last one, so listeners can tell
    a new failure from an old one by identity.
    """

    kind: DataSourceErrorKind
    status_code: int  # the HTTP status for ERROR_RESPONSE, otherwise 0
    time: float  # Unix time in seconds
    message: Optional[str]

    def __repr__(self) -> str:
        return "DataSourceErrorInfo(%s, %d, %r)" % (self.kind.name, self.status_code, self.message)


@dataclass(frozen=True, eq=False)
class DataSourceStatus:
    """
    A snapshot of the data source status. A change of status always produces a new snapshot.

    ``since`` is the Unix time of the last change of ``state``. ``error`` is the most recent
    failure, or None if nothing has failed yet; it survives state changes until a newer failure
    replaces it.
    """

    state: DataSourceState
    since: float
    error: Optional[DataSourceErrorInfo]

    def __repr__(self) -> str:
        return "DataSourceStatus(%s, %r)" % (self.state.name, self.error)


class DataSourceStatusProvider(metaclass=ABCMeta):
    """
    Read access to the data source status, plus change notifications.
    """

    @property
    @abstractmethod
    def status(self) -> DataSourceStatus:
        """
        The latest status snapshot.
        """
        pass

    @abstractmethod
    def add_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Registers a callable that receives each new :class:`DataSourceStatus`, in the order the
        changes happened.
        """
        pass

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataSourceStatus], None]):
        """
        Unregisters a listener. Removing one that was never added is not an error.
        """
        pass


@dataclass(frozen=True)
class DataStoreStatus:
    """
    The health of the data store, as reported by a store that supports monitoring.

    ``available`` is False while store operations are failing. ``stale`` is True when the store has
    just come back from an outage and may have missed updates, meaning the data source should
    rewrite the full data set.
    """

    available: bool
    stale: bool


class DataStoreUpdateSink(metaclass=ABCMeta):
    """
    Where a monitored data store, or the wrapper around it, publishes changes in its health.
    """

    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        The last published status.
        """
        pass

    @abstractmethod
    def update_status(self, status: DataStoreStatus):
        """
        Publishes a status. Listeners only hear about it if it differs from the last one.
        """
        pass

    @property
    @abstractmethod
    def listeners(self) -> Listeners:
        """
        The listeners that status changes are delivered to.
        """
        pass


class DataStoreStatusProvider(metaclass=ABCMeta):
    """
    Read access to the data store's health feed, plus change notifications.
    """

    @property
    @abstractmethod
    def status(self) -> DataStoreStatus:
        """
        The latest store status.
        """

    @abstractmethod
    def is_monitoring_enabled(self) -> bool:
        """
        Whether the store reports its own health at all. If this is False, the status is always
        "available" and listeners are never called, so there is no point subscribing.
        """

    @abstractmethod
    def add_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Registers a callable that receives each new :class:`DataStoreStatus`.
        """

    @abstractmethod
    def remove_listener(self, listener: Callable[[DataStoreStatus], None]):
        """
        Unregisters a listener. Removing one that was never added is not an error.
        """


class DataSourceUpdateSink(metaclass=ABCMeta):
    """
    The only way a data source touches the store or the status model.

    Going through the sink serializes every store write, whichever thread it comes from, and turns
    store failures into ``STORE_ERROR`` status updates.
    """

    @abstractmethod
    def init(self, all_data: Mapping[VersionedDataKind, Mapping[str, ItemDescriptor]]):
        """
        Writes a full data set, replacing everything in the store.

        :raises StoreUpdateError: if the store failed
        """
        pass

    @abstractmethod
    def upsert(self, kind: VersionedDataKind, key: str, item: ItemDescriptor) -> bool:
        """
        Writes one item or tombstone, if its version is newer than the stored one.

        :return: True if the store was changed
        :raises StoreUpdateError: if the store failed
        """
        pass

    @abstractmethod
    def update_status(self, new_state: DataSourceState, new_error: Optional[DataSourceErrorInfo]):
        """
        Records a state and/or an error.

        Nothing happens if the state is unchanged and there is no error. Otherwise a new
        :class:`DataSourceStatus` replaces the current one and is broadcast. ``since`` only moves
        when the state actually changes, and a None error keeps the previous error.

        ``INTERRUPTED`` is not recorded while the data source is still ``INITIALIZING``: it has
        never been valid, so there is nothing to interrupt. The state stays ``INITIALIZING`` and
        only the error is recorded.
        """
        pass

    @property
    @abstractmethod
    def data_store_status_provider(self) -> Optional[DataStoreStatusProvider]:
        """
        The health feed of the store behind this sink, if there is one.
        """
        pass


class DataSource(metaclass=ABCMeta):
    """
    Keeps the data store synchronized, by streaming or by polling.
    """

    @abstractmethod
    def start(self) -> ReadySignal:
        """
        Starts work in the background and returns immediately.

        :return: a signal resolved as succeeded the first time the store is initialized, or as
            failed if the data source gives up or is stopped first
        """

    @abstractmethod
    def stop(self):
        """
        Shuts the data source down for good: no more connection or poll attempts, any open
        connection is closed, the state becomes ``OFF`` and a pending start signal is resolved as
        failed. Safe to call more than once.
        """

    @abstractmethod
    def is_alive(self) -> bool:
        pass

    @abstractmethod
    def initialized(self) -> bool:
        """
        True once this data source has written a full data set to the store.
        """


class FeatureRequester(metaclass=ABCMeta):
    """
    Fetches a full data set on behalf of the polling data source.
    """

    @abstractmethod
    def get_all_data(self) -> Any:
        """
        :return: the decoded JSON body, shaped ``{"flags": {...}, "segments": {...}}``
        :raises UnsuccessfulResponseException: for an HTTP error status
        """
        pass


class DiagnosticDescription:
    """
    Mixin for components that name themselves in diagnostic data.
    """

    @abstractmethod
    def describe_configuration(self, config) -> str:
        """
        :return: a short name for this kind of component, such as ``"memory"``
        """
        pass
