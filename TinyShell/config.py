import os

SHELL_NAME = "tinyshell"

# History
HISTORY_FILE = os.path.expanduser(
    os.environ.get("TINYSHELL_HISTFILE", "~/.tinyshell_history")
)
MAX_HISTORY = int(os.environ.get("TINYSHELL_HISTSIZE", "1000"))

# Reject unterminated quotes instead of flushing the open token
STRICT_QUOTES = os.environ.get("TINYSHELL_STRICT_QUOTES", "").lower() in ("1", "true", "yes", "on")

LOG_LEVEL = os.environ.get("TINYSHELL_LOG_LEVEL", "WARNING").upper()

# rw-r--r-- for files created by > and >>
REDIRECT_MODE = 0o644

DEFAULT_ALIASES = {
    "ll": "ls -la",
    "la": "ls -a",
    "..": "cd ..",
    "...": "cd ../..",
}
