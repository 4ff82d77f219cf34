"""Errors raised while evaluating a command line.

Every ShellError is caught by the main loop, printed with the shell name as
prefix, and turned into the value of ``$?``.
"""


class ShellError(Exception):
    """Base class for evaluation errors"""
    exit_status = 1


class ShellSyntaxError(ShellError):
    exit_status = 2


class ParseAmbiguity(ShellSyntaxError):
    """Unterminated quote (only raised in strict mode)"""


class CommandNotFound(ShellError):
    exit_status = 127

    def __init__(self, name):
        super().__init__(f"{name}: command not found")
        self.name = name


class ExecutionError(ShellError):
    """A resolved program could not be started"""
    exit_status = 126


class RedirectionIOError(ShellError):
    def __init__(self, path, reason):
        super().__init__(f"{path}: {reason}")
        self.path = path


class InvalidJobReference(ShellError):
    pass


class UnsupportedOperation(ShellError):
    pass


class EnvironmentResolutionError(ShellError):
    pass


class BuiltinUsageError(ShellError):
    pass


class ShellExit(Exception):
    """Raised by the exit built-in to leave the main loop"""

    def __init__(self, code=0):
        super().__init__(code)
        self.code = code
