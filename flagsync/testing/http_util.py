import json
import queue
import socket
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Thread


def start_server():
    """
    Starts a mock server on a free local port. Use it in a ``with`` block so it is shut down.
    """
    server = MockServerWrapper(_free_port())
    server.start()
    return server


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('localhost', 0))
        return s.getsockname()[1]


class MockServerWrapper(Thread):
    """
    A local HTTP server that answers GET requests from a table of canned responses, keyed by the
    request path including any query string, and records every request it receives.
    """

    def __init__(self, port):
        Thread.__init__(self, name="flagsync.testing.mock-server", daemon=True)
        self.port = port
        self.uri = 'http://localhost:%d' % port
        self.matchers = {}
        self.requests = queue.Queue()
        self.server = ThreadingHTTPServer(('localhost', port), _Handler)
        self.server.daemon_threads = True
        self.server.server_wrapper = self

    def run(self):
        self.server.serve_forever(poll_interval=0.1)

    def close(self):
        self.server.shutdown()
        self.server.server_close()

    def for_path(self, uri_path, content):
        self.matchers[uri_path] = content
        return self

    def await_request(self, timeout=5):
        return self.requests.get(timeout=timeout)

    def require_request(self):
        return self.requests.get_nowait()

    def should_have_requests(self, count):
        received = []
        while not self.requests.empty():
            received.append(str(self.requests.get_nowait()))
        assert len(received) == count, "expected %d requests but got %s" % (count, received)

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()


class _Handler(BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.1'

    def do_GET(self):
        wrapper = self.server.server_wrapper
        wrapper.requests.put(MockServerRequest(self))
        response = wrapper.matchers.get(self.path)
        if response is None:
            BasicResponse(404).write(self)
        else:
            response.write(self)

    def log_message(self, format, *args):
        pass


class MockServerRequest:
    def __init__(self, handler):
        self.method = handler.command
        self.path = handler.path
        self.headers = handler.headers

    def __str__(self):
        return "%s %s" % (self.method, self.path)


class BasicResponse:
    """A complete response with an optional text body."""

    def __init__(self, status, body=None, headers=None):
        self.status = status
        self.body = body
        self.headers = headers or {}

    def write(self, handler):
        payload = (self.body or '').encode('UTF-8')
        handler.send_response(self.status)
        for name, value in self.headers.items():
            handler.send_header(name, value)
        handler.send_header('Content-Length', str(len(payload)))
        handler.end_headers()
        handler.wfile.write(payload)


class JsonResponse(BasicResponse):
    def __init__(self, data, headers=None):
        all_headers = {'Content-Type': 'application/json'}
        all_headers.update(headers or {})
        BasicResponse.__init__(self, 200, json.dumps(data or {}), all_headers)


class ChunkedResponse:
    """
    A streaming response: every string passed to ``push()`` is sent as a chunk as soon as it is
    available, until ``close()`` ends the body.
    """

    def __init__(self, headers=None):
        self.chunks = queue.Queue()
        self.headers = headers or {}

    def push(self, chunk):
        if chunk is not None:
            self.chunks.put(chunk)

    def close(self):
        self.chunks.put(None)

    def write(self, handler):
        handler.send_response(200)
        handler.send_header('Transfer-Encoding', 'chunked')
        for name, value in self.headers.items():
            handler.send_header(name, value)
        handler.end_headers()
        handler.wfile.flush()
        for chunk in iter(self.chunks.get, None):
            data = chunk.encode('UTF-8')
            handler.wfile.write(b'%x\r\n%s\r\n' % (len(data), data))
            handler.wfile.flush()
        handler.wfile.write(b'0\r\n\r\n')
        handler.wfile.flush()
        handler.close_connection = True

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()


class CauseNetworkError:
    """Drops the connection without sending a response."""

    def write(self, handler):
        handler.close_connection = True
        raise Exception('intentional error')


class SequentialHandler:
    """Uses each response in turn for successive requests, then keeps repeating the last one."""

    def __init__(self, *responses):
        self.responses = responses
        self.counter = 0

    def write(self, handler):
        response = self.responses[min(self.counter, len(self.responses) - 1)]
        self.counter += 1
        response.write(handler)
