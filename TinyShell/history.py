import logging
import os
import sys

from TinyShell import config

try:
    import readline
except ImportError:
    import pyreadline3 as readline

log = logging.getLogger("tinyshell.history")

# Arrow keys walk the history, Ctrl+Left/Right move by word
KEY_BINDINGS = (
    "set editing-mode emacs",
    "\\e[A: previous-history",
    "\\e[B: next-history",
    "\\e[1;5D: backward-word",
    "\\e[1;5C: forward-word",
)


def init_readline(bindings=KEY_BINDINGS):
    """Turn off automatic history and apply the terminal key bindings"""
    try:
        # Lines are added explicitly once they have been evaluated
        readline.set_auto_history(False)
        if not sys.stdin.isatty():
            log.debug("stdin is not a terminal, skipping key bindings")
            return
        for binding in bindings:
            readline.parse_and_bind(binding)
    except Exception as e:
        print(f"Warning: Could not configure readline: {e}", file=sys.stderr)


def save_history(path=None):
    """Write the last MAX_HISTORY lines to the history file"""
    path = path or config.HISTORY_FILE
    try:
        readline.set_history_length(config.MAX_HISTORY)
        readline.write_history_file(path)
    except OSError as e:
        print(f"Warning: Could not save history: {e}", file=sys.stderr)


def load_history(path=None):
    path = path or config.HISTORY_FILE
    try:
        if os.path.exists(path):
            readline.read_history_file(path)
            readline.set_history_length(config.MAX_HISTORY)
    except OSError as e:
        print(f"Warning: Could not load history: {e}", file=sys.stderr)


def add_to_history(line):
    readline.add_history(line)


def history_entries():
    hlen = readline.get_current_history_length()
    return [readline.get_history_item(i) for i in range(1, hlen + 1)]


def show_history(count=None, out=None):
    """Print the history, or only its last `count` lines"""
    entries = history_entries()
    start = 0 if count is None else max(len(entries) - count, 0)
    for i in range(start, len(entries)):
        print(f"{i + 1}\t{entries[i]}", file=out or sys.stdout)
