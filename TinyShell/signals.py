import logging
import os
import signal
import sys
from contextlib import contextmanager

log = logging.getLogger("tinyshell.signals")

INTERRUPT_NOTICE = "(Use 'exit' to quit)"
STOP_NOTICE = "(Job stopped - use 'fg' to resume)"


class SignalDispatcher:
    """
    Turns SIGINT / SIGTSTP into shell messages.

    At the prompt an interrupt reprints the prompt; during a foreground
    pipeline the children get the signal from the terminal themselves; a job
    resumed with fg lives in its own process group, so the interrupt is
    forwarded there. Stop requests are advisory only.
    """

    def __init__(self, prompt=None, stream=None):
        self.prompt = prompt
        self.stream = stream
        self.busy = False
        self.foreground_pgid = None

    def install(self):
        signal.signal(signal.SIGINT, self.handle)
        signal.signal(signal.SIGTSTP, self.handle)

    def _write(self, text):
        stream = self.stream or sys.stdout
        stream.write(text)
        stream.flush()

    def handle(self, signum, frame):
        log.debug("received signal %d", signum)
        if signum == signal.SIGINT:
            self.on_interrupt()
        elif signum == signal.SIGTSTP:
            self.on_stop()

    def on_interrupt(self):
        if self.foreground_pgid is not None:
            try:
                os.killpg(self.foreground_pgid, signal.SIGINT)
            except ProcessLookupError:
                pass
            self._write("\n")
            return

        if self.busy:
            self._write("\n")
            return

        self._write(f"\n{INTERRUPT_NOTICE}\n")
        if self.prompt is not None:
            self._write(self.prompt())

    def on_stop(self):
        self._write(f"\n{STOP_NOTICE}\n")

    @contextmanager
    def foreground(self, pgid=None):
        """Mark the shell busy while a foreground pipeline or job runs"""
        self.busy = True
        self.foreground_pgid = pgid
        try:
            yield
        finally:
            self.busy = False
            self.foreground_pgid = None
