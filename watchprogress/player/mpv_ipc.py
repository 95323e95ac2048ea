from __future__ import annotations

import json
import os
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, BinaryIO


class MpvIpcError(RuntimeError):
    pass


@dataclass
class MpvIpcClient:
    """Minimal mpv JSON IPC client for reading playback properties.

    Transport:
    - Linux/macOS: Unix domain socket from mpv's --input-ipc-server
    - Windows: named pipe path like \\\\.\\pipe\\mpv

    Synchronous request/response; async mpv events are skipped.
    """

    ipc_path: str
    debug: bool = False
    trace: bool = False

    _fh: BinaryIO | None = None
    _sock: socket.socket | None = None
    _next_request_id: int = 1
    _pending: bytearray = field(default_factory=bytearray, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def connected(self) -> bool:
        return self._fh is not None or self._sock is not None

    def connect(self, *, timeout_sec: float = 2.0) -> None:
        deadline = time.time() + timeout_sec
        last_err: OSError | None = None
        while time.time() < deadline:
            try:
                if os.name == "nt":
                    self._fh = open(self.ipc_path, "r+b", buffering=0)
                    return
                s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                try:
                    s.settimeout(0.25)
                    s.connect(self.ipc_path)
                except OSError:
                    s.close()
                    raise
                self.attach(s)
                return
            except OSError as e:
                last_err = e
                time.sleep(0.05)
        raise MpvIpcError(f"Failed to connect to mpv IPC {self.ipc_path!r}: {last_err}")

    def attach(self, sock: socket.socket) -> None:
        """Use an already-connected socket as the transport."""

        sock.settimeout(None)
        self._sock = sock
        self._fh = None
        self._pending.clear()

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            finally:
                self._fh = None
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def _write(self, raw: bytes) -> None:
        try:
            if self._fh is not None:
                self._fh.write(raw)
            elif self._sock is not None:
                self._sock.sendall(raw)
            else:
                raise MpvIpcError("Not connected")
        except OSError as e:
            raise MpvIpcError(f"Failed to write to mpv IPC: {e}") from e

    def _read_chunk(self, timeout_sec: float) -> bytes | None:
        """Read what is available; None on timeout, b"" when mpv hung up."""

        if self._fh is not None:
            try:
                # Named pipes have no timeout; reads block until mpv writes.
                return self._fh.read(1)
            except OSError as e:
                raise MpvIpcError(f"Failed to read from mpv IPC: {e}") from e
        if self._sock is None:
            raise MpvIpcError("Not connected")
        self._sock.settimeout(max(0.01, timeout_sec))
        try:
            return self._sock.recv(4096)
        except socket.timeout:
            return None
        except OSError as e:
            raise MpvIpcError(f"Failed to read from mpv IPC: {e}") from e
        finally:
            if self._sock is not None:
                self._sock.settimeout(None)

    def _next_line(self, deadline: float) -> bytes | None:
        while True:
            nl = self._pending.find(b"\n")
            if nl >= 0:
                line = bytes(self._pending[:nl])
                del self._pending[: nl + 1]
                return line
            remaining = deadline - time.time()
            if remaining <= 0:
                return None
            chunk = self._read_chunk(remaining)
            if chunk is None:
                continue
            if not chunk:
                raise MpvIpcError("mpv closed the IPC connection")
            self._pending += chunk

    def command(self, *cmd: Any, timeout_sec: float = 2.0) -> dict[str, Any]:
        """Send an mpv command and wait for the response with the same request_id."""

        with self._lock:
            req_id = self._next_request_id
            self._next_request_id += 1
            payload = {"command": list(cmd), "request_id": req_id}
            if self.debug and self.trace:
                print(f"[debug] mpv >>> {payload}")
            self._write((json.dumps(payload, separators=(",", ":")) + "\n").encode("utf-8"))

            deadline = time.time() + timeout_sec
            while True:
                line = self._next_line(deadline)
                if line is None:
                    raise MpvIpcError(f"Timed out waiting for mpv IPC response for request_id={req_id}")
                line = line.strip()
                if not line:
                    continue
                try:
                    msg = json.loads(line.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    continue
                if isinstance(msg, dict) and msg.get("request_id") == req_id:
                    if self.debug and self.trace:
                        print(f"[debug] mpv <<< {msg}")
                    return msg

    def get_property(self, name: str) -> Any:
        """Return a property value, or None when mpv reports it unavailable."""

        resp = self.command("get_property", name)
        if resp.get("error") != "success":
            return None
        return resp.get("data")
