from flagsync.config import Config
from flagsync.impl.datasource.polling import PollingDataSource
from flagsync.impl.datasource.streaming import StreamingDataSource
from flagsync.impl.datastore.wrapper import FeatureStoreClientWrapper
from flagsync.impl.datasystem import DataSystem
from flagsync.interfaces import DataSourceErrorKind, DataSourceState
from flagsync.testing.builders import FlagBuilder, SegmentBuilder
from flagsync.testing.http_util import BasicResponse, start_server
from flagsync.testing.stub_util import (make_delete_event, make_patch_event,
                                        make_put_event, poll_content,
                                        stream_content)
from flagsync.testing.sync_util import wait_until
from flagsync.testing.test_util import SpyListener
from flagsync.versioned_data_kind import FEATURES, SEGMENTS


def test_store_is_wrapped():
    config = Config(sdk_key='sdk-key')
    system = DataSystem(config)
    assert isinstance(system.store, FeatureStoreClientWrapper)
    assert system.store.store is config.feature_store
    assert system.initialized() is False


def test_initial_statuses():
    system = DataSystem(Config(sdk_key='sdk-key'))
    assert system.data_source_status_provider.status.state == DataSourceState.INITIALIZING
    assert system.data_source_status_provider.status.error is None
    assert system.data_store_status_provider.status.available is True
    assert system.data_store_status_provider.is_monitoring_enabled() is False


def test_streaming_is_used_by_default():
    system = DataSystem(Config(sdk_key='sdk-key'))
    assert isinstance(system._make_data_source(Config(sdk_key='sdk-key')), StreamingDataSource)
    assert isinstance(system._make_data_source(Config(sdk_key='sdk-key', stream=False)), PollingDataSource)


def test_diagnostics_are_created_unless_opted_out():
    system = DataSystem(Config(sdk_key='sdk-key'))
    assert system.diagnostic_accumulator is not None
    assert system.diagnostic_init['kind'] == 'diagnostic-init'
    assert system.diagnostic_init['id'] == system.diagnostic_accumulator.diagnostic_id

    opted_out = DataSystem(Config(sdk_key='sdk-key', diagnostic_opt_out=True))
    assert opted_out.diagnostic_accumulator is None
    assert opted_out.diagnostic_init is None


def test_streaming_mode_initializes_store_and_applies_updates():
    flag = FlagBuilder('flagkey').version(1).on(True).build()
    segment = SegmentBuilder('segkey').version(1).build()
    updated = FlagBuilder('flagkey').version(2).on(False).build()

    with start_server() as server:
        with stream_content(make_put_event([flag], [segment])) as stream:
            server.for_path('/all', stream)
            system = DataSystem(Config(sdk_key='sdk-key', stream_uri=server.uri))
            listener = SpyListener()
            system.data_source_status_provider.add_listener(listener)
            try:
                ready = system.start()
                assert ready.wait(5) is True
                assert ready.succeeded is True
                assert system.initialized() is True
                assert system.store.get(FEATURES, 'flagkey').item == flag
                assert system.store.get(SEGMENTS, 'segkey').item == segment
                assert listener.await_status(DataSourceState.VALID).error is None

                stream.push(make_patch_event(FEATURES, updated))
                wait_until(lambda: system.store.get(FEATURES, 'flagkey').version == 2)

                stream.push(make_delete_event(SEGMENTS, 'segkey', 5))
                wait_until(lambda: system.store.get(SEGMENTS, 'segkey').item is None)
                assert system.store.get(SEGMENTS, 'segkey').version == 5

                assert len(system.diagnostic_accumulator.stream_inits) == 1
                assert system.diagnostic_accumulator.stream_inits[0]['failed'] is False
            finally:
                system.stop()

            assert listener.await_status(DataSourceState.OFF).error is None


def test_polling_mode_initializes_store():
    flag = FlagBuilder('flagkey').version(1).build()

    with start_server() as server:
        server.for_path('/sdk/latest-all', poll_content([flag]))
        system = DataSystem(Config(sdk_key='sdk-key', base_uri=server.uri, stream=False))
        try:
            ready = system.start()
            assert ready.wait(5) is True
            assert ready.succeeded is True
            assert system.store.get(FEATURES, 'flagkey').item == flag
            assert system.data_source_status_provider.status.state == DataSourceState.VALID

            r = server.await_request()
            assert r.headers['Authorization'] == 'sdk-key'
        finally:
            system.stop()


def test_polling_mode_uses_payload_filter():
    with start_server() as server:
        server.for_path('/sdk/latest-all?filter=microservice-1', poll_content())
        system = DataSystem(Config(sdk_key='sdk-key', base_uri=server.uri, stream=False, payload_filter_key='microservice-1'))
        try:
            assert system.start().wait(5) is True
            assert system.initialized() is True
        finally:
            system.stop()


def test_streaming_mode_fails_promptly_on_401():
    with start_server() as server:
        server.for_path('/all', BasicResponse(401))
        system = DataSystem(Config(sdk_key='sdk-key', stream_uri=server.uri, initial_reconnect_delay=0.01))
        try:
            ready = system.start()
            assert ready.wait(5) is True
            assert ready.succeeded is False
            assert system.initialized() is False

            status = system.data_source_status_provider.status
            assert status.state == DataSourceState.OFF
            assert status.error.kind == DataSourceErrorKind.ERROR_RESPONSE
            assert status.error.status_code == 401
        finally:
            system.stop()


def test_polling_mode_fails_promptly_on_401():
    with start_server() as server:
        server.for_path('/sdk/latest-all', BasicResponse(401))
        system = DataSystem(Config(sdk_key='sdk-key', base_uri=server.uri, stream=False))
        try:
            ready = system.start()
            assert ready.wait(5) is True
            assert ready.succeeded is False

            status = system.data_source_status_provider.status
            assert status.state == DataSourceState.OFF
            assert status.error.status_code == 401
        finally:
            system.stop()


def test_start_twice_returns_same_signal():
    with start_server() as server:
        server.for_path('/sdk/latest-all', poll_content())
        system = DataSystem(Config(sdk_key='sdk-key', base_uri=server.uri, stream=False))
        try:
            first = system.start()
            assert system.start() is first
            assert first.wait(5) is True
        finally:
            system.stop()
        server.should_have_requests(1)


def test_stop_ends_status_dispatcher_threads():
    with start_server() as server:
        server.for_path('/sdk/latest-all', poll_content())
        system = DataSystem(Config(sdk_key='sdk-key', base_uri=server.uri, stream=False))
        listener = SpyListener()
        system.data_source_status_provider.add_listener(listener)
        assert system.start().wait(5) is True
        listener.await_status(DataSourceState.VALID)
        dispatcher = system._data_source_listeners._dispatcher_thread

        system.stop()
        dispatcher.join(2)

        assert not dispatcher.is_alive()
        assert listener.statuses[-1].state == DataSourceState.OFF


def test_stop_before_initialized_resolves_signal_as_failed():
    with start_server() as server:
        with stream_content() as stream:
            server.for_path('/all', stream)
            system = DataSystem(Config(sdk_key='sdk-key', stream_uri=server.uri))
            ready = system.start()
            system.stop()
            assert ready.wait(5) is True
            assert ready.succeeded is False
            assert system.data_source_status_provider.status.state == DataSourceState.OFF

