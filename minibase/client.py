"""Interactive command-line client that sends SQL to a server over TCP or a Unix socket."""

from __future__ import annotations

import argparse
import re
import socket
import sys
from typing import Iterable, Iterator, TextIO

MAX_MEM_BUFFER_SIZE = 8192
PORT_DEFAULT = 8765
DEFAULT_HOST = "127.0.0.1"
PROMPT = "Rucbase> "

_EXIT_COMMANDS = frozenset({"exit", "exit;", "bye", "bye;"})


def is_exit_command(cmd: str) -> bool:
    """Whether ``cmd`` asks the client to quit."""
    return cmd in _EXIT_COMMANDS


def connect_unix(path: str) -> socket.socket:
    """Open a stream connection to a Unix domain socket."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(path)
    except OSError:
        sock.close()
        raise
    return sock


def connect_tcp(host: str, port: int) -> socket.socket:
    """Resolve ``host`` and open a TCP connection to it."""
    address = socket.gethostbyname(host)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((address, port))
    except OSError:
        sock.close()
        raise
    return sock


def read_reply(sock: socket.socket) -> str:
    """Receive one reply; the text ends at the first NUL byte.

    Raises EOFError when the server has closed the connection.
    """
    data = sock.recv(MAX_MEM_BUFFER_SIZE)
    if not data:
        raise EOFError("connection has been closed")
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def run_session(sock: socket.socket, lines: Iterable[str], out: TextIO | None = None) -> int:
    """Send each non-empty line as a command and print the replies.

    Stops at an exit command or when the connection ends. Returns the number
    of commands sent. Errors while sending propagate as OSError.
    """
    out = out if out is not None else sys.stdout
    sent = 0
    for line in lines:
        command = line.rstrip("\r\n")
        if not command:
            continue
        if is_exit_command(command):
            out.write("The client will be closed.\n")
            break
        sock.sendall(command.encode("utf-8") + b"\0")
        sent += 1
        try:
            reply = read_reply(sock)
        except EOFError:
            out.write("Connection has been closed\n")
            break
        except OSError as exc:
            print(f"Connection was broken: {exc}", file=sys.stderr)
            break
        out.write(reply)
        out.flush()
    return sent


def _prompt_lines() -> Iterator[str]:
    try:
        import readline  # noqa: F401  (line editing and history for input())
    except ImportError:
        pass
    while True:
        try:
            yield input(PROMPT)
        except EOFError:
            return


def _parse_port(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def main(argv: list[str] | None = None) -> int:
    """Run the interactive client; return the process exit status."""
    parser = argparse.ArgumentParser(prog="minibase-client", add_help=False)
    parser.add_argument("-s", dest="unix_socket_path")
    parser.add_argument("-h", dest="host", default=DEFAULT_HOST)
    parser.add_argument("-p", dest="port", type=_parse_port, default=PORT_DEFAULT)
    args, _ = parser.parse_known_args(argv)

    try:
        if args.unix_socket_path is not None:
            sock = connect_unix(args.unix_socket_path)
        else:
            sock = connect_tcp(args.host, args.port)
    except OSError as exc:
        print(f"Failed to connect. errmsg={exc}", file=sys.stderr)
        return 1

    with sock:
        try:
            run_session(sock, _prompt_lines(), sys.stdout)
        except OSError as exc:
            print(f"send error: {exc}", file=sys.stderr)
            return 1
    print("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())