from __future__ import annotations

import json
import os
import socket
import unittest


@unittest.skipIf(os.name == "nt", "Unix socket transport only")
class MpvIpcClientTests(unittest.TestCase):
    def setUp(self) -> None:
        from watchprogress.player.mpv_ipc import MpvIpcClient

        self.peer, ours = socket.socketpair()
        self.client = MpvIpcClient(ipc_path="<socketpair>")
        self.client.attach(ours)

    def tearDown(self) -> None:
        self.client.close()
        self.peer.close()

    def _sent(self) -> dict:
        raw = self.peer.recv(4096).decode("utf-8")
        return json.loads(raw.strip())

    def test_get_property_skips_events(self) -> None:
        self.peer.sendall(
            b'{"event":"playback-restart"}\n'
            b'{"request_id":1,"error":"success","data":12.5}\n'
        )
        self.assertEqual(self.client.get_property("time-pos"), 12.5)
        self.assertEqual(self._sent(), {"command": ["get_property", "time-pos"], "request_id": 1})

    def test_unavailable_property_is_none(self) -> None:
        self.peer.sendall(b'{"request_id":1,"error":"property unavailable"}\n')
        self.assertIsNone(self.client.get_property("duration"))

    def test_responses_split_across_reads(self) -> None:
        self.peer.sendall(b'{"request_id":1,"error":"success","data":true}\n{"request_id":2,')
        self.assertIs(self.client.get_property("pause"), True)
        self.peer.sendall(b'"error":"success","data":false}\n')
        self.assertIs(self.client.get_property("pause"), False)

    def test_command_timeout(self) -> None:
        from watchprogress.player.mpv_ipc import MpvIpcError

        with self.assertRaises(MpvIpcError):
            self.client.command("get_property", "pause", timeout_sec=0.05)

    def test_peer_hangup(self) -> None:
        from watchprogress.player.mpv_ipc import MpvIpcError

        self.peer.shutdown(socket.SHUT_WR)
        with self.assertRaises(MpvIpcError):
            self.client.get_property("pause")

    def test_not_connected(self) -> None:
        from watchprogress.player.mpv_ipc import MpvIpcClient, MpvIpcError

        client = MpvIpcClient(ipc_path="/nonexistent")
        self.assertFalse(client.connected)
        with self.assertRaises(MpvIpcError):
            client.command("get_property", "pause")

    def test_connect_failure(self) -> None:
        from watchprogress.player.mpv_ipc import MpvIpcClient, MpvIpcError

        client = MpvIpcClient(ipc_path="/nonexistent/mpv.sock")
        with self.assertRaises(MpvIpcError):
            client.connect(timeout_sec=0.1)


if __name__ == "__main__":
    unittest.main()
