"""
Fetches the full flag and segment data set for the polling data source.
"""

import json
from typing import Optional, Tuple
from urllib import parse

from flagsync.impl.http import _http_factory
from flagsync.impl.util import (InvalidDataError, _headers, log,
                                throw_if_unsuccessful_response)
from flagsync.interfaces import FeatureRequester

LATEST_ALL_URI = '/sdk/latest-all'


def _poll_uri(config) -> str:
    uri = config.base_uri + LATEST_ALL_URI
    if config.payload_filter_key is not None:
        uri += '?' + parse.urlencode({'filter': config.payload_filter_key})
    return uri


class FeatureRequesterImpl(FeatureRequester):
    """
    Issues one GET per poll. When the server sent an ETag, the last body is kept and the next
    request is made conditional on it, so a ``304 Not Modified`` answer returns the kept body.
    """

    def __init__(self, config):
        factory = _http_factory(config)
        self._config = config
        self._http = factory.create_pool_manager(1)
        self._timeout = factory.timeout
        self._uri = _poll_uri(config)
        self._last: Optional[Tuple[str, dict]] = None

    @property
    def uri(self) -> str:
        return self._uri

    def get_all_data(self) -> dict:
        headers = _headers(self._config)
        headers['Accept-Encoding'] = 'gzip'
        if self._last is not None:
            headers['If-None-Match'] = self._last[0]

        response = self._http.request('GET', self._uri, headers=headers, timeout=self._timeout, retries=1)
        throw_if_unsuccessful_response(response)

        if response.status == 304 and self._last is not None:
            log.debug("Polling response from %s was not modified (ETag %s)", self._uri, self._last[0])
            return self._last[1]

        data = self._decode(response.data)
        etag = response.headers.get('ETag')
        if etag is not None:
            self._last = (etag, data)
        log.debug("Polling response from %s: status %d, ETag %s", self._uri, response.status, etag)
        return data

    @staticmethod
    def _decode(body: bytes) -> dict:
        try:
            return json.loads(body.decode('UTF-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidDataError("malformed JSON in polling response: %s" % e) from e
