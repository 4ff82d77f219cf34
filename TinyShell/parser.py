import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from TinyShell.errors import ParseAmbiguity, ShellSyntaxError

log = logging.getLogger("tinyshell.parser")

QUOTES = ("'", '"')

# $VAR, ${VAR}, $?
VAR_PATTERN = re.compile(r"\$(?:\{(\w+)\}|(\w+)|(\?))")


@dataclass(frozen=True)
class Stage:
    """One command of a pipeline"""
    args: tuple
    input_file: Optional[str] = None
    output_file: Optional[str] = None
    append: bool = False
    text: str = ""

    @property
    def name(self):
        return self.args[0] if self.args else ""

    @property
    def redirected(self):
        return self.input_file is not None or self.output_file is not None


def expand_variables(token, last_status=0, env=None):
    """
    Substitute environment variables in a token.
    Supports: $VAR, ${VAR}, $? (exit status). Unknown names expand to "".
    """
    env = os.environ if env is None else env

    def substitute(match):
        if match.group(3):
            return str(last_status)
        return env.get(match.group(1) or match.group(2), "")

    return VAR_PATTERN.sub(substitute, token)


def split_pipeline(line):
    """
    Split a command line on unquoted pipes.
    Quotes are kept in the segments; each segment is re-tokenized later.
    Returns: list of stripped segment strings
    """
    if not line.strip():
        return []

    segments, cur = [], []
    quote = None
    for ch in line:
        if ch in QUOTES:
            if quote is None:
                quote = ch
            elif ch == quote:
                quote = None
            cur.append(ch)
        elif ch == "|" and quote is None:
            segments.append("".join(cur).strip())
            cur = []
        else:
            cur.append(ch)
    segments.append("".join(cur).strip())
    return segments


def _read_target(text, i, operator, strict):
    # Path after a redirection operator: a quoted string or a run of
    # characters up to whitespace or another operator.
    n = len(text)
    while i < n and text[i].isspace():
        i += 1

    if i < n and text[i] in QUOTES:
        quote = text[i]
        end = text.find(quote, i + 1)
        if end == -1:
            if strict:
                raise ParseAmbiguity(f"unterminated quote {quote} after '{operator}'")
            path, i = text[i + 1:], n
        else:
            path, i = text[i + 1:end], end + 1
    else:
        start = i
        while i < n and not text[i].isspace() and text[i] not in "<>":
            i += 1
        path = text[start:i]

    if not path:
        raise ShellSyntaxError(f"syntax error: missing file name after '{operator}'")
    return path, i


def parse_stage(text, last_status=0, strict=False):
    """
    Tokenize one pipeline stage.
    Returns: Stage with expanded args and redirection targets
    """
    args, cur = [], []
    input_file = output_file = None
    append = False
    quote = None

    def flush():
        if cur:
            token = expand_variables("".join(cur), last_status)
            if token:
                args.append(token)
            cur.clear()

    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            else:
                cur.append(ch)
            i += 1
        elif ch in QUOTES:
            quote = ch
            i += 1
        elif ch == "<":
            flush()
            input_file, i = _read_target(text, i + 1, "<", strict)
        elif ch == ">":
            flush()
            i += 1
            append = i < n and text[i] == ">"
            if append:
                i += 1
            output_file, i = _read_target(text, i, ">>" if append else ">", strict)
        elif ch.isspace():
            flush()
            i += 1
        else:
            cur.append(ch)
            i += 1

    if quote:
        if strict:
            raise ParseAmbiguity(f"unterminated quote {quote}")
        log.debug("unterminated quote %s in %r, flushing open token", quote, text)
    flush()

    return Stage(tuple(args), input_file, output_file, append, text)


def validate_pipeline(stages):
    """Only the first stage may read a file, only the last may write one."""
    last = len(stages) - 1
    for idx, stage in enumerate(stages):
        if stage.input_file is not None and idx != 0:
            raise ShellSyntaxError(
                f"input redirection only allowed on the first command: {stage.text}")
        if stage.output_file is not None and idx != last:
            raise ShellSyntaxError(
                f"output redirection only allowed on the last command: {stage.text}")


def parse_command(line, last_status=0, strict=False):
    """
    Parse command line into pipeline stages and background flag.
    Returns: (stages: list of Stage, background: bool)
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return [], False

    background = line.endswith("&")
    if background:
        line = line[:-1].strip()
        if not line:
            raise ShellSyntaxError("syntax error near unexpected token '&'")

    segments = split_pipeline(line)
    stages = [parse_stage(seg, last_status, strict) for seg in segments]

    # A lone command that expanded to nothing ($UNSET) is a no-op
    if len(stages) == 1 and not stages[0].args and not stages[0].redirected:
        return [], False

    for stage in stages:
        if not stage.args:
            if len(stages) > 1:
                raise ShellSyntaxError("syntax error near unexpected token '|'")
            raise ShellSyntaxError("syntax error: missing command")

    validate_pipeline(stages)
    return stages, background
