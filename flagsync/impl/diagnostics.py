"""
Diagnostic statistics about synchronization: a one-time description of the configuration, and a
periodic summary of stream connection attempts.

Only the payloads are produced here; delivering them anywhere is up to the caller.
"""

import platform
import threading
import uuid

from flagsync.config import DEFAULT_BASE_URI, DEFAULT_STREAM_URI
from flagsync.impl.util import current_time_millis
from flagsync.version import VERSION


class _DiagnosticAccumulator:
    """
    Collects stream connection attempts between two periodic diagnostic payloads.
    """

    def __init__(self, diagnostic_id):
        self.diagnostic_id = diagnostic_id
        self.data_since_date = current_time_millis()
        self._state_lock = threading.Lock()
        self._stream_inits = []

    def record_stream_init(self, timestamp: int, duration: int, failed: bool):
        """
        :param timestamp: when the attempt started, in Unix milliseconds
        :param duration: milliseconds until the attempt succeeded or failed
        """
        entry = {'timestamp': timestamp, 'durationMillis': duration, 'failed': failed}
        with self._state_lock:
            self._stream_inits.append(entry)

    @property
    def stream_inits(self) -> list:
        with self._state_lock:
            return list(self._stream_inits)

    def create_event_and_reset(self) -> dict:
        with self._state_lock:
            stream_inits, self._stream_inits = self._stream_inits, []

        now = current_time_millis()
        event = _event_header('diagnostic', now, self.diagnostic_id)
        event['dataSinceDate'] = self.data_since_date
        event['streamInits'] = stream_inits
        self.data_since_date = now
        return event


def create_diagnostic_id(config):
    sdk_key = config.sdk_key or ''
    return {'diagnosticId': str(uuid.uuid4()), 'sdkKeySuffix': sdk_key[-6:]}


def create_diagnostic_init(creation_date, diagnostic_id, config):
    event = _event_header('diagnostic-init', creation_date, diagnostic_id)
    event['configuration'] = _create_diagnostic_config_object(config)
    event['sdk'] = _create_diagnostic_sdk_object(config)
    event['platform'] = _create_diagnostic_platform_object()
    return event


def _event_header(kind, creation_date, diagnostic_id):
    return {'kind': kind, 'creationDate': creation_date, 'id': diagnostic_id}


def _seconds_to_millis(seconds):
    return int(seconds * 1000)


def _create_diagnostic_config_object(config):
    http = config.http
    return {
        'customBaseURI': config.base_uri != DEFAULT_BASE_URI,
        'customStreamURI': config.stream_base_uri != DEFAULT_STREAM_URI,
        'connectTimeoutMillis': _seconds_to_millis(http.connect_timeout),
        'socketTimeoutMillis': _seconds_to_millis(http.read_timeout),
        'usingProxy': http.http_proxy is not None,
        'streamingDisabled': not config.stream,
        'reconnectTimeMillis': _seconds_to_millis(config.initial_reconnect_delay),
        'pollingIntervalMillis': _seconds_to_millis(config.poll_interval),
        'usingPayloadFilter': config.payload_filter_key is not None,
        'dataStoreType': _describe_component(config.feature_store, config),
    }


def _create_diagnostic_sdk_object(config):
    return {'name': 'flagsync', 'version': VERSION, 'wrapperName': config.wrapper_name, 'wrapperVersion': config.wrapper_version}


def _create_diagnostic_platform_object():
    return {
        'name': 'python',
        'osArch': platform.machine(),
        'osName': _normalize_os_name(platform.system()),
        'osVersion': platform.release(),
        'pythonVersion': platform.python_version(),
        'pythonImplementation': platform.python_implementation(),
    }


def _describe_component(component, config, default_name='memory'):
    if component is None:
        return default_name
    describe = getattr(component, 'describe_configuration', None)
    return describe(config) if callable(describe) else 'custom'


def _normalize_os_name(name):
    # platform.system() already says 'Linux' and 'Windows'
    return 'MacOS' if name == 'Darwin' else name
