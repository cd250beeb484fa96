from flagsync.feature_store import InMemoryFeatureStore
from flagsync.impl.datastore.status import (DataStoreStatusProviderImpl,
                                            DataStoreUpdateSinkImpl)
from flagsync.impl.listeners import Listeners
from flagsync.interfaces import DataStoreStatus
from flagsync.testing.mock_components import MonitoredFeatureStore


def test_initial_status_is_available_and_not_stale():
    sink = DataStoreUpdateSinkImpl(Listeners())
    assert sink.status() == DataStoreStatus(True, False)


def test_listeners_are_only_notified_of_changes():
    statuses = []
    listeners = Listeners()
    listeners.add(statuses.append)
    sink = DataStoreUpdateSinkImpl(listeners)

    sink.update_status(DataStoreStatus(True, False))
    sink.update_status(DataStoreStatus(False, False))
    sink.update_status(DataStoreStatus(False, False))
    sink.update_status(DataStoreStatus(True, True))

    assert statuses == [DataStoreStatus(False, False), DataStoreStatus(True, True)]
    assert sink.status() == DataStoreStatus(True, True)


def test_provider_reports_sink_status():
    sink = DataStoreUpdateSinkImpl(Listeners())
    provider = DataStoreStatusProviderImpl(InMemoryFeatureStore(), sink)
    sink.update_status(DataStoreStatus(False, False))
    assert provider.status == DataStoreStatus(False, False)


def test_provider_monitoring_follows_store():
    sink = DataStoreUpdateSinkImpl(Listeners())
    assert DataStoreStatusProviderImpl(InMemoryFeatureStore(), sink).is_monitoring_enabled() is False
    assert DataStoreStatusProviderImpl(MonitoredFeatureStore(InMemoryFeatureStore()), sink).is_monitoring_enabled() is True


def test_provider_listeners_can_be_added_and_removed():
    statuses = []
    sink = DataStoreUpdateSinkImpl(Listeners())
    provider = DataStoreStatusProviderImpl(InMemoryFeatureStore(), sink)

    provider.add_listener(statuses.append)
    sink.update_status(DataStoreStatus(False, False))
    provider.remove_listener(statuses.append)
    sink.update_status(DataStoreStatus(True, True))

    assert statuses == [DataStoreStatus(False, False)]
