"""
End-to-end tests: a real CurrencyServer on a loopback port.
"""

import json
import socket
import threading
import time

import pytest

from currencyserver import CurrencyServer, ServerConfig
from currencyserver.client import CurrencyClient, ServerError
from currencyserver.currency import Currency

from conftest import TestServer, recv_until


BANNER_END = b"code>\n"


class TestTextServer:
    """Text protocol over TCP."""

    def test_banner_and_lookup(self, text_server):
        with text_server.connect() as sock:
            banner = recv_until(sock, BANNER_END)
            assert banner == b"Connected...\nUsage: GET <currency, country, or code>\n"

            sock.sendall(b"GET USD\n")
            assert recv_until(sock, b"\n") == b"US Dollar USD 840 United States\n"

            sock.sendall(b"GET 'costa rica'\n")
            assert recv_until(sock, b"\n") == b"Costa Rican Colon CRC 188 Costa Rica\n"

            sock.sendall(b"BOGUS\n")
            assert recv_until(sock, b"\n") == b"Invalid command\n"

    def test_sessions_are_independent(self, text_server):
        first = text_server.connect()
        second = text_server.connect()
        try:
            recv_until(first, BANNER_END)
            recv_until(second, BANNER_END)

            second.sendall(b"GET jpy\n")
            assert recv_until(second, b"\n") == b"Yen JPY 392 Japan\n"

            first.close()

            second.sendall(b"GET zzz\n")
            assert recv_until(second, b"\n") == b"Nothing found\n"
        finally:
            second.close()


class TestJSONServer:
    """JSON protocol over TCP."""

    def test_raw_exchange(self, json_server):
        with json_server.connect() as sock:
            sock.sendall(b'{"Get":"usd"}')
            assert recv_until(sock, b"\n") == (
                b'[{"Name":"US Dollar","Code":"USD","Number":"840","Country":"United States"}]\n'
            )

            sock.sendall(b'{"Get": }')
            sock.sendall(b' {"Get":"zzz"}')
            error_line, empty_line, _ = recv_until(sock, b"[]\n").split(b"\n")
            assert "Error" in json.loads(error_line)
            assert empty_line == b"[]"

    def test_client_lookup(self, json_server, usd):
        host, port = json_server.address
        with CurrencyClient(f"{host}:{port}", timeout=5.0) as client:
            assert client.lookup("usd") == [usd]
            assert client.lookup("zzz") == []
            assert [c.code for c in client.lookup("dollar")] == ["USD", "CAD"]
            assert len(client.lookup("*")) == 5

    def test_client_reuses_connection(self, json_server):
        host, port = json_server.address
        client = CurrencyClient(f"{host}:{port}", timeout=5.0)
        try:
            client.lookup("usd")
            conn = client._conn
            client.lookup("eur")
            assert client._conn is conn
            assert conn.bytes_sent == len(b'{"Get":"usd"}\n') + len(b'{"Get":"eur"}\n')
        finally:
            client.close()

    def test_concurrent_clients(self, json_server):
        host, port = json_server.address
        errors = []
        results = {}

        def worker(query):
            try:
                with CurrencyClient(f"{host}:{port}", timeout=5.0) as client:
                    for _ in range(10):
                        results[query] = [c.code for c in client.lookup(query)]
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(q,)) for q in ("usd", "eur", "japan", "canada")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert errors == []
        assert results == {"usd": ["USD"], "eur": ["EUR"], "japan": ["JPY"], "canada": ["CAD"]}


class TestServerLifecycle:
    """Startup, shutdown and overload."""

    def test_stop(self, sample_table, free_port):
        server = CurrencyServer(ServerConfig(host="127.0.0.1", port=free_port), table=sample_table)
        test_srv = TestServer(server)
        test_srv.start()
        assert server.is_running

        test_srv.stop()

        assert not server.is_running
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", free_port), timeout=1.0)

    def test_loads_dataset_file(self, tmp_path, free_port):
        data = tmp_path / "currencies.csv"
        data.write_text("Lek,ALL,008,Albania\n", encoding="utf-8")
        server = CurrencyServer(
            ServerConfig(host="127.0.0.1", port=free_port, protocol="json", data_file=str(data))
        )
        test_srv = TestServer(server)
        test_srv.start()
        try:
            with CurrencyClient(f"127.0.0.1:{free_port}", timeout=5.0) as client:
                assert client.lookup("albania") == [Currency("Lek", "ALL", "008", "Albania")]
        finally:
            test_srv.stop()

    def test_full_pool_rejects_connection(self, sample_table, free_port):
        server = CurrencyServer(
            ServerConfig(host="127.0.0.1", port=free_port, min_workers=1, max_workers=1, queue_size=1),
            table=sample_table,
        )
        test_srv = TestServer(server)
        test_srv.start()
        busy = test_srv.connect()
        try:
            assert recv_until(busy, BANNER_END).endswith(BANNER_END)

            with test_srv.connect() as rejected:
                assert rejected.recv(1024) == b""

            busy.close()
            served = False
            for _ in range(20):
                with test_srv.connect() as later:
                    if recv_until(later, BANNER_END).endswith(BANNER_END):
                        served = True
                        break
                time.sleep(0.1)
            assert served
        finally:
            busy.close()
            test_srv.stop()


class TestClientErrors:
    """CurrencyClient failure paths."""

    def test_server_error_reply(self, json_server, usd):
        host, port = json_server.address
        client = CurrencyClient(f"{host}:{port}", timeout=5.0)
        try:
            client.connect()
            client._conn.send(b'{"Get": 1}')

            with pytest.raises(ServerError, match="Get"):
                client.lookup("usd")
            assert client._decoder.decode() == [usd.to_dict()]
        finally:
            client.close()

    def test_connect_retries_then_fails(self, free_port):
        sleeps = []
        client = CurrencyClient(f"127.0.0.1:{free_port}", timeout=1.0, max_retries=3, sleep=sleeps.append)

        with pytest.raises(ConnectionRefusedError):
            client.connect()
        assert len(sleeps) == 2
