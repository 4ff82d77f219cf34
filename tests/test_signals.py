import io
import signal
import unittest
from unittest import mock

from TinyShell.signals import INTERRUPT_NOTICE, STOP_NOTICE, SignalDispatcher


class TestSignalDispatcher(unittest.TestCase):
    def setUp(self):
        self.out = io.StringIO()
        self.dispatcher = SignalDispatcher(prompt=lambda: "$ ", stream=self.out)

    def test_interrupt_at_prompt_reprints_prompt(self):
        self.dispatcher.handle(signal.SIGINT, None)
        self.assertEqual(self.out.getvalue(), f"\n{INTERRUPT_NOTICE}\n$ ")

    def test_interrupt_while_busy_prints_newline_only(self):
        with self.dispatcher.foreground():
            self.dispatcher.handle(signal.SIGINT, None)
        self.assertEqual(self.out.getvalue(), "\n")
        self.assertFalse(self.dispatcher.busy)

    def test_interrupt_is_forwarded_to_resumed_job(self):
        with mock.patch("TinyShell.signals.os.killpg") as killpg:
            with self.dispatcher.foreground(pgid=4242):
                self.dispatcher.handle(signal.SIGINT, None)
        killpg.assert_called_once_with(4242, signal.SIGINT)
        self.assertIsNone(self.dispatcher.foreground_pgid)

    def test_forwarding_to_vanished_group(self):
        with mock.patch("TinyShell.signals.os.killpg", side_effect=ProcessLookupError):
            with self.dispatcher.foreground(pgid=4242):
                self.dispatcher.handle(signal.SIGINT, None)
        self.assertEqual(self.out.getvalue(), "\n")

    def test_stop_is_advisory(self):
        with mock.patch("TinyShell.signals.os.killpg") as killpg:
            self.dispatcher.handle(signal.SIGTSTP, None)
        killpg.assert_not_called()
        self.assertEqual(self.out.getvalue(), f"\n{STOP_NOTICE}\n")

    def test_install(self):
        old_int = signal.getsignal(signal.SIGINT)
        old_tstp = signal.getsignal(signal.SIGTSTP)
        try:
            self.dispatcher.install()
            self.assertEqual(signal.getsignal(signal.SIGINT), self.dispatcher.handle)
            self.assertEqual(signal.getsignal(signal.SIGTSTP), self.dispatcher.handle)
        finally:
            signal.signal(signal.SIGINT, old_int)
            signal.signal(signal.SIGTSTP, old_tstp)


if __name__ == "__main__":
    unittest.main()
