"""Tests for port availability helpers."""

import socket
from types import SimpleNamespace

import psutil
import pytest

from sameorigin.utils import port_utils
from sameorigin.utils.port_utils import check_port_availability, get_process_using_port, is_port_in_use


@pytest.fixture
def listening_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    yield sock
    sock.close()


def fake_connection(port, pid, status=psutil.CONN_LISTEN):
    return SimpleNamespace(laddr=SimpleNamespace(ip="127.0.0.1", port=port), pid=pid, status=status)


class FakeProcess:
    def __init__(self, pid):
        self.pid = pid

    def name(self):
        return "nginx"

    def username(self):
        return "www-data"


class TestIsPortInUse:
    def test_listening_port_is_busy(self, listening_socket):
        port = listening_socket.getsockname()[1]

        assert is_port_in_use(port) is True

    def test_free_port(self, unused_tcp_port):
        assert is_port_in_use(unused_tcp_port) is False


class TestGetProcessUsingPort:
    def test_listening_process_found(self, monkeypatch):
        monkeypatch.setattr(psutil, "net_connections", lambda kind: [
            fake_connection(8000, 11, status=psutil.CONN_ESTABLISHED),
            fake_connection(8000, 42),
        ])
        monkeypatch.setattr(psutil, "Process", FakeProcess)

        assert get_process_using_port(8000) == {"name": "nginx", "pid": 42, "username": "www-data"}

    def test_no_listener(self, monkeypatch):
        monkeypatch.setattr(psutil, "net_connections", lambda kind: [fake_connection(9000, 42)])

        assert get_process_using_port(8000) is None

    def test_access_denied(self, monkeypatch):
        def denied(kind):
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil, "net_connections", denied)

        assert get_process_using_port(8000) is None


class TestCheckPortAvailability:
    def test_free(self, monkeypatch):
        monkeypatch.setattr(port_utils, "is_port_in_use", lambda port, host: False)

        available, message = check_port_availability(8000)

        assert available is True
        assert "8000" in message

    def test_busy_with_process_details(self, monkeypatch):
        monkeypatch.setattr(port_utils, "is_port_in_use", lambda port, host: True)
        monkeypatch.setattr(port_utils, "get_process_using_port", lambda port: {
            "name": "nginx", "pid": 42, "username": "www-data",
        })

        available, message = check_port_availability(8000)

        assert available is False
        assert "nginx" in message
        assert "42" in message

    def test_busy_unknown_process(self, monkeypatch):
        monkeypatch.setattr(port_utils, "is_port_in_use", lambda port, host: True)
        monkeypatch.setattr(port_utils, "get_process_using_port", lambda port: None)

        available, message = check_port_availability(8000)

        assert available is False
        assert message == "Порт 8000 занят"
