import logging
import re
import time
from typing import Any

from flagsync.impl.http import _base_headers

log = logging.getLogger('flagsync.util')

# Statuses after which retrying with the same SDK key is pointless
_UNRECOVERABLE_STATUSES = frozenset([401, 403])

_APPLICATION_VALUE_PATTERN = re.compile(r"[a-zA-Z0-9._-]*")
_MAX_APPLICATION_VALUE_LENGTH = 64


def current_time_millis() -> int:
    return int(time.time() * 1000)


def validate_application_info(application: dict, logger: logging.Logger) -> dict:
    return {name: validate_application_value(application.get(name, ""), name, logger) for name in ("id", "version")}


def validate_application_value(value: Any, name: str, logger: logging.Logger) -> str:
    """
    Returns the value if it can be sent in a tags header, or an empty string if it cannot.
    """
    if not isinstance(value, str):
        return ""
    if len(value) > _MAX_APPLICATION_VALUE_LENGTH:
        logger.warning('Value of application[%s] was longer than %d characters and was discarded', name, _MAX_APPLICATION_VALUE_LENGTH)
        return ""
    if _APPLICATION_VALUE_PATTERN.fullmatch(value) is None:
        logger.warning('Value of application[%s] contained invalid characters and was discarded', name)
        return ""
    return value


def _headers(config):
    headers = _base_headers(config)
    headers['Content-Type'] = "application/json"
    return headers


class UnsuccessfulResponseException(Exception):
    """
    Raised by the polling fetch when the server answers with an HTTP error status.
    """

    def __init__(self, status: int):
        super().__init__("HTTP error %d" % status)
        self._status = status

    @property
    def status(self) -> int:
        return self._status


class InvalidDataError(ValueError):
    """
    Raised when a stream event or poll response is malformed, either because it is not valid JSON
    or because the JSON does not have the expected shape.
    """


class StoreUpdateError(Exception):
    """
    Raised when the data store failed while a data source was applying an update to it. The
    store's own exception is available as ``__cause__``.
    """


def throw_if_unsuccessful_response(resp):
    if resp.status >= 400:
        raise UnsuccessfulResponseException(resp.status)


def is_http_error_recoverable(status: int) -> bool:
    return status not in _UNRECOVERABLE_STATUSES


def http_error_description(status: int) -> str:
    if status in _UNRECOVERABLE_STATUSES:
        return "HTTP error %d (invalid SDK key)" % status
    return "HTTP error %d" % status


def http_error_message(status: int, context: str, retryable_message: str = "will retry") -> str:
    outcome = retryable_message if is_http_error_recoverable(status) else "giving up permanently"
    return "Received %s for %s - %s" % (http_error_description(status), context, outcome)
