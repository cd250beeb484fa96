import certifi
import urllib3

from flagsync.version import VERSION


def _application_header_value(application: dict) -> str:
    parts = []
    app_id = application.get('id', '')
    app_version = application.get('version', '')

    if app_id:
        parts.append("application-id/%s" % app_id)

    if app_version:
        parts.append("application-version/%s" % app_version)

    return " ".join(parts)


def _base_headers(config) -> dict:
    """
    The headers that every request made by a data source carries, whether it is a stream
    connection or a poll.
    """
    headers = {'Authorization': config.sdk_key or '', 'User-Agent': 'PythonClient/' + VERSION}

    tags = _application_header_value(config.application)
    if tags:
        headers['X-LaunchDarkly-Tags'] = tags

    if isinstance(config.wrapper_name, str) and config.wrapper_name != "":
        wrapper = config.wrapper_name
        if isinstance(config.wrapper_version, str) and config.wrapper_version != "":
            wrapper += "/" + config.wrapper_version
        headers['X-LaunchDarkly-Wrapper'] = wrapper

    return headers


def _http_factory(config):
    return HTTPFactory(_base_headers(config), config.http)


class HTTPFactory:
    """
    Builds urllib3 pools that share the configured timeouts and certificate settings. The
    streaming data source overrides the read timeout, since the stream is expected to stay
    idle between heartbeats.
    """

    def __init__(self, base_headers, http_config, override_read_timeout=None):
        self.__base_headers = base_headers
        self.__http_config = http_config
        read_timeout = http_config.read_timeout if override_read_timeout is None else override_read_timeout
        self.__timeout = urllib3.Timeout(connect=http_config.connect_timeout, read=read_timeout)

    @property
    def base_headers(self):
        return self.__base_headers

    @property
    def http_config(self):
        return self.__http_config

    @property
    def timeout(self):
        return self.__timeout

    def create_pool_manager(self, num_pools):
        http = self.__http_config
        if http.disable_ssl_verification:
            tls_options = {'cert_reqs': 'CERT_NONE', 'ca_certs': None}
        else:
            tls_options = {'cert_reqs': 'CERT_REQUIRED', 'ca_certs': http.ca_certs or certifi.where()}

        if http.http_proxy is None:
            return urllib3.PoolManager(num_pools=num_pools, **tls_options)

        proxy_headers = None
        auth = urllib3.util.parse_url(http.http_proxy).auth
        if auth is not None:
            proxy_headers = urllib3.util.make_headers(proxy_basic_auth=auth)
        return urllib3.ProxyManager(http.http_proxy, num_pools=num_pools, proxy_headers=proxy_headers, **tls_options)
