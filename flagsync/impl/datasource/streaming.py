import time
from threading import Lock, Thread
from typing import Callable, Optional
from urllib import parse

from ld_eventsource import SSEClient
from ld_eventsource.actions import Event, Fault
from ld_eventsource.config import (ConnectStrategy, ErrorStrategy,
                                   RetryDelayStrategy)
from ld_eventsource.errors import HTTPStatusError

from flagsync.impl.datasource.delta import (DeltaApplier, parse_delete_data,
                                            parse_patch_data, parse_put_data)
from flagsync.impl.datasource.status import error_info_from_exception
from flagsync.impl.http import HTTPFactory, _http_factory
from flagsync.impl.ready import ReadySignal
from flagsync.impl.util import (InvalidDataError, StoreUpdateError,
                                current_time_millis, http_error_message,
                                is_http_error_recoverable, log)
from flagsync.interfaces import (DataSource, DataSourceErrorInfo,
                                 DataSourceErrorKind, DataSourceState,
                                 DataSourceUpdateSink, DataStoreStatus)

# allows for up to 5 minutes to elapse without any data sent across the stream. The heartbeats sent as comments on the
# stream will keep this from triggering
STREAM_READ_TIMEOUT = 5 * 60

MAX_RETRY_DELAY = 30
BACKOFF_RESET_INTERVAL = 60
JITTER_RATIO = 0.5

STREAM_ALL_PATH = '/all'

SseClientBuilder = Callable[[str, object], SSEClient]


def stream_uri(config) -> str:
    uri = config.stream_base_uri.rstrip('/') + STREAM_ALL_PATH
    if config.payload_filter_key is not None:
        uri += '?%s' % parse.urlencode({'filter': config.payload_filter_key})
    return uri


def create_sse_client(uri: str, config) -> SSEClient:
    # The stream gets its own read timeout, much longer than the one used for polling.
    http_factory = _http_factory(config)
    stream_http_factory = HTTPFactory(http_factory.base_headers, http_factory.http_config, override_read_timeout=STREAM_READ_TIMEOUT)
    headers = dict(http_factory.base_headers)
    headers['Accept'] = 'text/event-stream'
    return SSEClient(
        connect=ConnectStrategy.http(url=uri, headers=headers, pool=stream_http_factory.create_pool_manager(1), urllib3_request_options={"timeout": stream_http_factory.timeout}),
        error_strategy=ErrorStrategy.always_continue(),  # we'll make error-handling decisions when we see a Fault
        initial_retry_delay=config.initial_reconnect_delay,
        retry_delay_strategy=RetryDelayStrategy.default(max_delay=MAX_RETRY_DELAY, backoff_multiplier=2, jitter_multiplier=JITTER_RATIO),
        retry_delay_reset_threshold=BACKOFF_RESET_INTERVAL,
        logger=log,
    )


class StreamingDataSource(Thread, DataSource):
    """
    Keeps the store up to date from a server-sent event stream.

    Events are handled one at a time on this thread, in the order the transport delivers them.
    Reconnecting with backoff is left to the transport; this class decides whether an error should
    be retried at all, and forces a reconnect when the data it has applied can no longer be trusted:
    after malformed data, after a failed store write, or when the store reports that it recovered
    from an outage with stale data.
    """

    def __init__(self, config, update_sink: DataSourceUpdateSink, diagnostic_accumulator=None, sse_client_builder: SseClientBuilder = create_sse_client):
        Thread.__init__(self, name="flagsync.datasource.streaming")
        self.daemon = True
        self._uri = stream_uri(config)
        self._config = config
        self._update_sink = update_sink
        self._applier = DeltaApplier(update_sink)
        self._diagnostic_accumulator = diagnostic_accumulator
        self._sse_client_builder = sse_client_builder
        self._ready = ReadySignal()
        self._sse: Optional[SSEClient] = None

        # Covers the following variables
        self._state_lock = Lock()
        self._running = False
        self._connection_attempt_start_time: Optional[float] = None

    @property
    def uri(self) -> str:
        return self._uri

    def start(self) -> ReadySignal:
        log.info("Starting StreamingDataSource connecting to uri: %s", self._uri)
        with self._state_lock:
            self._running = True
            self._connection_attempt_start_time = time.time()
        self._sse = self._sse_client_builder(self._uri, self._config)
        self.__subscribe_to_store_status()
        Thread.start(self)
        return self._ready

    def run(self):
        try:
            for action in self._sse.all:
                if not self._running:
                    break
                if isinstance(action, Event):
                    self._process_message(action)
                elif isinstance(action, Fault):
                    # If the SSE client detects the stream has closed, then it will emit a fault with no-error. We can
                    # ignore this since we want the connection to continue.
                    if action.error is None:
                        continue

                    if not self._handle_error(action.error):
                        break
        finally:
            self._sse.close()

    def stop(self):
        self.__stop_with_error_info(None)

    def __stop_with_error_info(self, error: Optional[DataSourceErrorInfo]):
        with self._state_lock:
            was_running, self._running = self._running, False
        if was_running:
            log.info("Stopping StreamingDataSource")
            self.__unsubscribe_from_store_status()
            if self._sse is not None:
                self._sse.close()

        self._update_sink.update_status(DataSourceState.OFF, error)
        self._ready.resolve(False)

    def initialized(self) -> bool:
        return self._ready.succeeded is True

    def _process_message(self, msg: Event):
        try:
            if msg.event == 'put':
                self._applier.apply_put(parse_put_data(msg.data))
                self.__on_put_applied()
            elif msg.event == 'patch':
                self._applier.apply_patch(parse_patch_data(msg.data))
            elif msg.event == 'delete':
                self._applier.apply_delete(parse_delete_data(msg.data))
            else:
                log.warning('Unhandled event in stream processor: %s', msg.event)
        except InvalidDataError as e:
            if not self._running:
                return
            log.error("Invalid data in stream event; will restart stream: %s", e)
            self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info_from_exception(e))
            self._restart_stream(record_failure=True)
        except StoreUpdateError as e:
            # the update sink has already recorded the STORE_ERROR status
            if not self._running:
                return
            log.info("Failed to store data from stream; will restart stream: %s", e)
            self._restart_stream(record_failure=True)
        except Exception as e:
            if not self._running:
                return
            log.exception("Unexpected error while handling stream event; will restart stream: %s", e)
            self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info_from_exception(e))
            self._restart_stream(record_failure=True)

    def __on_put_applied(self):
        # stop() may have run while the store was being written
        if not self._running:
            return

        # this also ends the measured window; later errors on this connection are not stream inits
        self._record_stream_init(False)

        self._update_sink.update_status(DataSourceState.VALID, None)

        if self._ready.resolve(True):
            log.info("StreamingDataSource initialized ok.")

    # Returns true to continue, false to stop
    def _handle_error(self, error: Exception) -> bool:
        if not self._running:
            return False  # don't retry if we've been deliberately stopped

        self._record_stream_init(True)
        error_info = error_info_from_exception(error)

        if isinstance(error, HTTPStatusError):
            http_error_message_result = http_error_message(error.status, "stream connection")
            if not is_http_error_recoverable(error.status):
                log.error(http_error_message_result)
                self.__stop_with_error_info(error_info)
                return False
            log.warning(http_error_message_result)
        else:
            # no stacktrace here because, for a typical connection error, it'll just be a lengthy tour of urllib3 internals
            log.warning("Unexpected error on stream connection: %s, will retry", error)

        self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info)
        self.__begin_next_attempt()
        return True

    def _restart_stream(self, record_failure: bool):
        if not self._running:
            return
        if record_failure:
            self._record_stream_init(True)
        self._sse.interrupt()
        self.__begin_next_attempt()

    def __begin_next_attempt(self):
        with self._state_lock:
            self._connection_attempt_start_time = time.time() + self._sse.next_retry_delay

    def _record_stream_init(self, failed: bool):
        with self._state_lock:
            start_time, self._connection_attempt_start_time = self._connection_attempt_start_time, None
        if self._diagnostic_accumulator is None or start_time is None:
            return
        current_time = current_time_millis()
        elapsed = current_time - int(start_time * 1000)
        self._diagnostic_accumulator.record_stream_init(int(start_time * 1000), elapsed if elapsed >= 0 else 0, failed)

    def __subscribe_to_store_status(self):
        provider = self._update_sink.data_store_status_provider
        if provider is not None and provider.is_monitoring_enabled():
            provider.add_listener(self._on_store_status_changed)

    def __unsubscribe_from_store_status(self):
        provider = self._update_sink.data_store_status_provider
        if provider is not None:
            provider.remove_listener(self._on_store_status_changed)

    def _on_store_status_changed(self, status: DataStoreStatus):
        if not self._running:
            return
        if not status.available:
            error_info = DataSourceErrorInfo(DataSourceErrorKind.STORE_ERROR, 0, time.time(), "data store is unavailable")
            self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info)
            return

        if status.stale:
            log.warning("Restarting stream to refresh data after data store outage")
            self._restart_stream(record_failure=False)

    # magic methods for "with" statement (used in testing)
    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.stop()
