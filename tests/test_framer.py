from __future__ import annotations

import errno
import os
import unittest
from unittest import mock

from uart_com.errors import ConfigurationError, TransportWriteError
from uart_com.framer import END, START, Framer, build_frame, send


class TestBuildFrame(unittest.TestCase):
    def test_wraps_payload(self):
        self.assertEqual(build_frame(b"STATUS\r\n"), b"[UART_COM][START]STATUS\r\n[UART_COM][END]")

    def test_empty_payload(self):
        self.assertEqual(build_frame(b""), START + END)
        self.assertEqual(Framer().encode(b""), START + END)

    def test_payload_is_not_escaped(self):
        payload = b"abc" + END + b"def"
        self.assertEqual(build_frame(payload), START + payload + END)

    def test_custom_delimiters(self):
        self.assertEqual(Framer(start=b"<", end=b">").encode(b"x"), b"<x>")
        with self.assertRaises(ValueError):
            Framer(start=b"")


class TestSend(unittest.TestCase):
    def setUp(self):
        self.r, self.w = os.pipe()

    def tearDown(self):
        for fd in (self.r, self.w):
            try:
                os.close(fd)
            except OSError:
                pass

    def test_loopback_receives_exact_frame(self):
        for payload in (b"", b"A", b"STATUS\r\n", bytes(range(256))):
            with self.subTest(payload=payload):
                written = send(self.w, payload)
                expected = START + payload + END
                self.assertEqual(written, len(expected))
                self.assertEqual(os.read(self.r, 4096), expected)

    def test_drain_failure_is_only_a_warning(self):
        # a pipe is not a tty, so tcdrain fails
        with self.assertLogs("uart_com", level="WARNING") as cm:
            written = send(self.w, b"ping")
        self.assertEqual(written, len(build_frame(b"ping")))
        self.assertTrue(any("drain" in line for line in cm.output))

    def test_accepts_object_with_fileno(self):
        with os.fdopen(os.dup(self.w), "wb", buffering=0) as f:
            send(f, b"x")
        self.assertEqual(os.read(self.r, 4096), build_frame(b"x"))

    def test_partial_and_transient_writes_are_retried(self):
        chunks = []
        calls = iter([BlockingIOError, InterruptedError, 5, 3, None])

        def fake_write(fd, data):
            step = next(calls)
            if isinstance(step, type) and issubclass(step, BaseException):
                raise step()
            n = len(data) if step is None else step
            chunks.append(bytes(data[:n]))
            return n

        with mock.patch("uart_com.framer.os.write", side_effect=fake_write), \
                mock.patch("uart_com.framer.termios.tcdrain"), \
                mock.patch("uart_com.framer.time.sleep") as sleep:
            written = send(self.w, b"STATUS\r\n")

        frame = build_frame(b"STATUS\r\n")
        self.assertEqual(written, len(frame))
        self.assertEqual(b"".join(chunks), frame)
        self.assertEqual([len(c) for c in chunks[:2]], [5, 3])
        sleep.assert_called_once_with(0.001)

    def test_hard_write_error_raises(self):
        def fake_write(fd, data):
            if len(data) == len(build_frame(b"abc")):
                return 4
            raise OSError(errno.EIO, "I/O error")

        with mock.patch("uart_com.framer.os.write", side_effect=fake_write), \
                self.assertLogs("uart_com", level="ERROR"):
            with self.assertRaises(TransportWriteError) as cm:
                send(self.w, b"abc")
        self.assertEqual(cm.exception.remaining, len(build_frame(b"abc")) - 4)

    def test_negative_handle(self):
        with self.assertLogs("uart_com", level="ERROR"):
            with self.assertRaises(ConfigurationError):
                send(-1, b"x")

    def test_closed_handle(self):
        fd, self.w = self.w, -1
        os.close(fd)
        with self.assertLogs("uart_com", level="ERROR"):
            with self.assertRaises(ConfigurationError):
                send(fd, b"x")

    def test_closed_file_object(self):
        f = os.fdopen(os.dup(self.w), "wb", buffering=0)
        f.close()
        with self.assertLogs("uart_com", level="ERROR"):
            with self.assertRaises(ConfigurationError):
                send(f, b"x")


if __name__ == "__main__":
    unittest.main()
