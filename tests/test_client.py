import io
import socket
import threading
from unittest.mock import patch

import pytest

from minibase.client import (
    connect_tcp,
    connect_unix,
    is_exit_command,
    main,
    read_reply,
    run_session,
)


def _serve(conn):
    buf = b""
    with conn:
        while True:
            chunk = conn.recv(4096)
            if not chunk:
                return
            buf += chunk
            while b"\0" in buf:
                cmd, buf = buf.split(b"\0", 1)
                if cmd == b"quit":
                    return
                conn.sendall(b"echo:" + cmd + b"\0")


def _serve_in_thread(conn):
    thread = threading.Thread(target=_serve, args=(conn,), daemon=True)
    thread.start()
    return thread


def _accept_once(listener):
    def run():
        conn, _ = listener.accept()
        _serve(conn)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


@pytest.fixture
def tcp_server():
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    thread = _accept_once(listener)
    yield listener.getsockname()[1]
    listener.close()
    thread.join(5)


@pytest.mark.parametrize("cmd", ["exit", "exit;", "bye", "bye;"])
def test_exit_commands(cmd):
    assert is_exit_command(cmd) is True


@pytest.mark.parametrize("cmd", ["quit", "EXIT", " exit", "exit ;", "select * from t;", ""])
def test_non_exit_commands(cmd):
    assert is_exit_command(cmd) is False


def test_read_reply_stops_at_nul():
    a, b = socket.socketpair()
    with a, b:
        b.sendall(b"abc\0garbage")
        assert read_reply(a) == "abc"


def test_read_reply_raises_on_closed_connection():
    a, b = socket.socketpair()
    b.close()
    with a:
        with pytest.raises(EOFError):
            read_reply(a)


def test_run_session_sends_commands_until_exit():
    a, b = socket.socketpair()
    thread = _serve_in_thread(b)
    out = io.StringIO()
    with a:
        sent = run_session(a, ["select * from t;\n", "", "show tables;", "exit", "never"], out)
    thread.join(5)
    assert sent == 2
    assert out.getvalue() == "echo:select * from t;echo:show tables;The client will be closed.\n"


def test_run_session_reports_closed_connection():
    a, b = socket.socketpair()
    thread = _serve_in_thread(b)
    out = io.StringIO()
    with a:
        sent = run_session(a, ["help;", "quit", "show tables;"], out)
    thread.join(5)
    assert sent == 2
    assert out.getvalue() == "echo:help;Connection has been closed\n"


def test_run_session_without_lines_sends_nothing():
    a, b = socket.socketpair()
    with a, b:
        out = io.StringIO()
        assert run_session(a, [], out) == 0
        assert out.getvalue() == ""


def test_connect_tcp_round_trip(tcp_server):
    with connect_tcp("127.0.0.1", tcp_server) as sock:
        sock.sendall(b"hi\0")
        assert read_reply(sock) == "echo:hi"


def _unused_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_connect_tcp_refused():
    with pytest.raises(OSError):
        connect_tcp("127.0.0.1", _unused_port())


def test_connect_unix_round_trip(tmp_path):
    path = str(tmp_path / "db.sock")
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(path)
    listener.listen(1)
    thread = _accept_once(listener)
    try:
        with connect_unix(path) as sock:
            sock.sendall(b"desc t;\0")
            assert read_reply(sock) == "echo:desc t;"
    finally:
        listener.close()
        thread.join(5)


def test_connect_unix_missing_path(tmp_path):
    with pytest.raises(OSError):
        connect_unix(str(tmp_path / "absent.sock"))


def test_main_over_tcp(tcp_server, capsys):
    with patch("builtins.input", side_effect=["show tables;", "bye;"]):
        status = main(["-h", "127.0.0.1", "-p", str(tcp_server)])
    out = capsys.readouterr().out
    assert status == 0
    assert out == "echo:show tables;The client will be closed.\nBye.\n"


def test_main_ends_on_end_of_input(tcp_server, capsys):
    with patch("builtins.input", side_effect=["help;", EOFError]):
        status = main(["-p", str(tcp_server)])
    out = capsys.readouterr().out
    assert status == 0
    assert out == "echo:help;Bye.\n"


def test_main_over_unix_socket(tmp_path, capsys):
    path = str(tmp_path / "db.sock")
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(path)
    listener.listen(1)
    thread = _accept_once(listener)
    try:
        with patch("builtins.input", side_effect=["select 1;", "exit"]):
            status = main(["-s", path])
    finally:
        listener.close()
        thread.join(5)
    out = capsys.readouterr().out
    assert status == 0
    assert out.startswith("echo:select 1;")
    assert out.endswith("Bye.\n")


def test_main_connection_failure_returns_one(capsys):
    status = main(["-h", "127.0.0.1", "-p", str(_unused_port())])
    assert status == 1
    assert "Failed to connect" in capsys.readouterr().err