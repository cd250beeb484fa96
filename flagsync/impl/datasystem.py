from typing import Optional

from flagsync.config import Config
from flagsync.impl.datasource.feature_requester import FeatureRequesterImpl
from flagsync.impl.datasource.polling import PollingDataSource
from flagsync.impl.datasource.status import (DataSourceStatusProviderImpl,
                                             DataSourceUpdateSinkImpl)
from flagsync.impl.datasource.streaming import StreamingDataSource
from flagsync.impl.datastore.status import (DataStoreStatusProviderImpl,
                                            DataStoreUpdateSinkImpl)
from flagsync.impl.datastore.wrapper import FeatureStoreClientWrapper
from flagsync.impl.diagnostics import (_DiagnosticAccumulator,
                                       create_diagnostic_id,
                                       create_diagnostic_init)
from flagsync.impl.listeners import Listeners
from flagsync.impl.ready import ReadySignal
from flagsync.impl.util import current_time_millis, log
from flagsync.interfaces import (DataSource, DataSourceStatusProvider,
                                 DataStoreStatusProvider, FeatureStore)


class DataSystem:
    """
    Wires a data source to the configured store, together with the status plumbing that both of
    them report to.

    The store is wrapped so that its failures are reported through the data store status provider,
    and the data source only ever writes to it through an update sink. Status listeners are called
    on dedicated threads, never on the thread of the data source.
    """

    def __init__(self, config: Config):
        self._config = config
        config._validate()

        # Set up data store plumbing
        self._data_store_listeners = Listeners("flagsync.datastore.status-listeners")
        self._data_store_update_sink = DataStoreUpdateSinkImpl(self._data_store_listeners)
        self._store_wrapper = FeatureStoreClientWrapper(config.feature_store, self._data_store_update_sink)
        self._data_store_status_provider_impl = DataStoreStatusProviderImpl(self._store_wrapper, self._data_store_update_sink)

        # Set up data source plumbing
        self._data_source_listeners = Listeners("flagsync.datasource.status-listeners")
        self._data_source_update_sink = DataSourceUpdateSinkImpl(self._store_wrapper, self._data_source_listeners, self._data_store_status_provider_impl)
        self._data_source_status_provider_impl = DataSourceStatusProviderImpl(self._data_source_listeners, self._data_source_update_sink)

        self._diagnostic_accumulator: Optional[_DiagnosticAccumulator] = None
        self._diagnostic_init: Optional[dict] = None
        if not config.diagnostic_opt_out:
            diagnostic_id = create_diagnostic_id(config)
            self._diagnostic_accumulator = _DiagnosticAccumulator(diagnostic_id)
            self._diagnostic_init = create_diagnostic_init(current_time_millis(), diagnostic_id, config)

        # Data source created in start(), so that a stopped system can never be started again
        self._data_source: Optional[DataSource] = None
        self._ready: Optional[ReadySignal] = None

    def start(self) -> ReadySignal:
        """
        Starts synchronizing in the background and returns immediately. Calling it again returns
        the signal of the first call.

        :return: a signal that is resolved as succeeded once the store has been initialized, or as
            failed if the data source gave up or was stopped first
        """
        if self._ready is not None:
            log.warning("DataSystem.start() was called more than once; ignoring")
            return self._ready
        self._data_source = self._make_data_source(self._config)
        self._ready = self._data_source.start()
        return self._ready

    def stop(self):
        if self._data_source is not None:
            self._data_source.stop()
        self._store_wrapper.stop()
        self._data_source_listeners.close()
        self._data_store_listeners.close()

    def initialized(self) -> bool:
        return self._data_source is not None and self._data_source.initialized()

    @property
    def store(self) -> FeatureStore:
        return self._store_wrapper

    @property
    def data_source_status_provider(self) -> DataSourceStatusProvider:
        return self._data_source_status_provider_impl

    @property
    def data_store_status_provider(self) -> DataStoreStatusProvider:
        return self._data_store_status_provider_impl

    @property
    def diagnostic_accumulator(self) -> Optional[_DiagnosticAccumulator]:
        return self._diagnostic_accumulator

    @property
    def diagnostic_init(self) -> Optional[dict]:
        """
        The one-time diagnostic description of this configuration, or None if diagnostics are
        disabled with ``diagnostic_opt_out``.
        """
        return self._diagnostic_init

    def _make_data_source(self, config: Config) -> DataSource:
        if config.stream:
            return StreamingDataSource(config, self._data_source_update_sink, self._diagnostic_accumulator)

        return PollingDataSource(config, FeatureRequesterImpl(config), self._data_source_update_sink)
