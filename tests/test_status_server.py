# FILE: tests/test_status_server.py
# ------------------------------------------------------------------------------
import contextlib
import json
import urllib.request

import pytest

import helloserver.server as server_mod
from helloserver.allocation import AllocationState, AllocatorLoop
from helloserver.config import load_config
from helloserver.errors.fatal import ServerError
from helloserver.server import StatusServer, status_payload

TARGET = 3


@pytest.fixture
def allocation():
    return AllocationState(target=TARGET, chunk_size_bytes=16)


@pytest.fixture
def conf():
    return load_config(host="127.0.0.1", port=0, interval_secs=5, custom_message="Hello 7 objects")


@pytest.fixture
def server(allocation, conf):
    srv = StatusServer(allocation, conf)
    srv.start_in_thread()
    yield srv
    srv.stop()


def _request(srv, path="/", method="GET", data=None, headers=None):
    host, port = srv.address
    req = urllib.request.Request(
        f"http://{host}:{port}{path}", method=method, data=data, headers=headers or {}
    )
    with urllib.request.urlopen(req, timeout=5) as resp:
        return resp.status, resp.headers.get("Content-Type"), resp.read()


def test_status_before_first_tick(server):
    status, content_type, body = _request(server)
    assert status == 200
    assert content_type == "application/json"
    assert body == (
        b'{"status":"ok","nbInstances":"0","intervalInSecs":"5","customMessage":"Hello 7 objects"}'
    )


def test_every_path_routes_to_status(server):
    for path in ("/", "/healthz", "/a/b/c?x=1"):
        _, _, body = _request(server, path)
        assert json.loads(body)["status"] == "ok"


def test_other_methods_answer_status(server):
    status, _, body = _request(server, method="POST", data=b"{}")
    assert status == 200
    assert json.loads(body)["nbInstances"] == "0"

    status, content_type, body = _request(server, method="HEAD")
    assert status == 200
    assert content_type == "application/json"
    assert body == b""


def test_nb_instances_monotonic_and_bounded(server, allocation):
    loop = AllocatorLoop(allocation, interval_secs=5)
    seen = []
    for _ in range(TARGET + 3):
        _, _, body = _request(server)
        seen.append(int(json.loads(body)["nbInstances"]))
        loop.tick()
    assert seen == sorted(seen)
    assert max(seen) == TARGET
    assert all(n <= TARGET for n in seen)


def test_trace_context_header_is_accepted(server):
    headers = {"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"}
    status, _, _ = _request(server, headers=headers)
    assert status == 200


def test_bind_failure_raises_server_error(server, allocation, conf):
    _, port = server.address
    other = StatusServer(allocation, conf, port=port)
    with pytest.raises(ServerError) as excinfo:
        other.bind()
    assert excinfo.value.context["port"] == port


def test_stop_is_idempotent(allocation, conf):
    srv = StatusServer(allocation, conf)
    srv.stop()
    srv.start_in_thread()
    srv.stop()
    srv.stop()


def test_status_payload_values_are_strings(allocation):
    allocation.allocate_chunk()
    payload = status_payload(allocation, 5, "msg")
    assert payload == {
        "status": "ok",
        "nbInstances": "1",
        "intervalInSecs": "5",
        "customMessage": "msg",
    }


def test_message_is_json_escaped(allocation):
    conf = load_config(host="127.0.0.1", port=0, custom_message='say "hi"')
    srv = StatusServer(allocation, conf)
    srv.start_in_thread()
    try:
        _, _, body = _request(srv)
    finally:
        srv.stop()
    assert json.loads(body)["customMessage"] == 'say "hi"'


def test_request_span_name_ignores_service_name(monkeypatch, allocation):
    names = []

    @contextlib.contextmanager
    def _recording_span(name, attributes=None, **kwargs):
        names.append(name)
        yield None

    monkeypatch.setattr(server_mod, "start_span", _recording_span)
    conf = load_config(host="127.0.0.1", port=0, OTEL_SERVICE_NAME="renamed-service")
    assert conf.service_name == "renamed-service"
    srv = StatusServer(allocation, conf)
    srv.start_in_thread()
    try:
        _request(srv, "/anything")
    finally:
        srv.stop()
    assert names == [server_mod.REQUEST_SPAN_NAME]
    assert server_mod.REQUEST_SPAN_NAME == "example-service"


def test_serve_loop_crash_reports_fatal(monkeypatch, allocation, conf):
    seen = []
    srv = StatusServer(allocation, conf, on_fatal=seen.append)
    srv.bind()

    def _broken_loop(*args, **kwargs):
        raise OSError("listening socket lost")

    monkeypatch.setattr(srv._httpd, "serve_forever", _broken_loop)
    try:
        with pytest.raises(OSError):
            srv.serve_forever()
    finally:
        srv.stop()
    assert len(seen) == 1
    assert str(seen[0]) == "listening socket lost"
