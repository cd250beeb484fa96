"""
Default implementation of the polling data source.
"""

from threading import Lock
from typing import Optional

from flagsync.impl.datasource.delta import DeltaApplier, parse_all_data
from flagsync.impl.datasource.status import error_info_from_exception
from flagsync.impl.ready import ReadySignal
from flagsync.impl.repeating_task import RepeatingTask
from flagsync.impl.util import (InvalidDataError, StoreUpdateError,
                                UnsuccessfulResponseException,
                                http_error_message, is_http_error_recoverable,
                                log)
from flagsync.interfaces import (DataSource, DataSourceErrorInfo,
                                 DataSourceState, DataSourceUpdateSink,
                                 FeatureRequester)


class PollingDataSource(DataSource):
    """
    Keeps the store up to date by fetching the full data set every ``poll_interval`` seconds.

    Polls never overlap; a failed poll is followed by the next scheduled one unless the failure
    is an HTTP status that means the credentials will never be accepted.
    """

    def __init__(self, config, requester: FeatureRequester, update_sink: DataSourceUpdateSink):
        self._config = config
        self._requester = requester
        self._update_sink = update_sink
        self._applier = DeltaApplier(update_sink)
        self._ready = ReadySignal()
        self._task = RepeatingTask("flagsync.datasource.polling", config.poll_interval, 0, self._poll)
        self._lock = Lock()
        self._started = False

    def start(self) -> ReadySignal:
        log.info("Starting PollingDataSource with request interval: %s", self._config.poll_interval)
        with self._lock:
            self._started = True
        self._task.start()
        return self._ready

    def initialized(self) -> bool:
        return self._ready.succeeded is True

    def is_alive(self) -> bool:
        with self._lock:
            return self._started and not self._task.stopped

    def stop(self):
        self.__stop_with_error_info(None)

    def __stop_with_error_info(self, error: Optional[DataSourceErrorInfo]):
        if not self._task.stopped:
            log.info("Stopping PollingDataSource")
            self._task.stop()

        self._update_sink.update_status(DataSourceState.OFF, error)
        self._ready.resolve(False)

    def _poll(self):
        try:
            all_data = parse_all_data(self._requester.get_all_data())
            self._applier.apply_put(all_data)
            if self._task.stopped:
                return

            self._update_sink.update_status(DataSourceState.VALID, None)
            if self._ready.resolve(True):
                log.info("PollingDataSource initialized ok")
        except UnsuccessfulResponseException as e:
            error_info = error_info_from_exception(e)

            http_error_message_result = http_error_message(e.status, "polling request")
            if not is_http_error_recoverable(e.status):
                log.error(http_error_message_result)
                self.__stop_with_error_info(error_info)
            elif not self._task.stopped:
                log.warning(http_error_message_result)
                self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info)
        except StoreUpdateError as e:
            # the update sink has already recorded the STORE_ERROR status
            log.warning("Failed to store polled data; will retry at next poll: %s", e)
        except InvalidDataError as e:
            log.error("Invalid data in polling response; will retry at next poll: %s", e)
            if not self._task.stopped:
                self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info_from_exception(e))
        except Exception as e:
            log.exception("Error: Exception encountered when updating flags. %s", e)
            if not self._task.stopped:
                self._update_sink.update_status(DataSourceState.INTERRUPTED, error_info_from_exception(e))

    # magic methods for "with" statement (used in testing)
    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.stop()
