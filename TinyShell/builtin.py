import os
import sys
from dataclasses import replace

from TinyShell import history
from TinyShell.errors import (
    BuiltinUsageError,
    EnvironmentResolutionError,
    ShellError,
    ShellExit,
)
from TinyShell.executor import open_output, wait_all
from TinyShell.job_control import continue_job, format_job, parse_job_id


def builtin_help(shell, args, out):
    """Print help message"""
    print("""TinyShell help:
 Built-in commands:
  cd [dir|-]        : change directory (- goes back to $OLDPWD)
  pwd               : print working directory
  export NAME=value : set environment variables
  echo [args]       : print arguments
  history [n]       : show command history
  alias [name=value]: create or show aliases
  unalias name      : remove aliases
  jobs              : list background jobs
  fg [%id]          : wait for a background job in the foreground
  bg                : not supported
  exit [code]       : exit shell
  help              : print this help

Features:
  Pipes using |
  Redirection using > >> <
  Variables $NAME ${NAME} $?
  Background with & (run command in background)
""", file=out)
    return 0


def home_dir():
    home = os.environ.get("HOME") or os.path.expanduser("~")
    if not home or home == "~":
        raise EnvironmentResolutionError("could not find home directory")
    return home


def builtin_cd(shell, args, out):
    """Change directory"""
    if not args:
        target = home_dir()
    elif args[0] == "-":
        target = os.environ.get("OLDPWD")
        if not target:
            raise BuiltinUsageError("cd: OLDPWD not set")
    elif args[0] == "~" or args[0].startswith("~/"):
        target = home_dir() + args[0][1:]
    else:
        target = args[0]

    try:
        old_pwd = os.getcwd()
    except OSError:
        # Current directory was removed
        old_pwd = os.environ.get("PWD", "")

    try:
        os.chdir(target)
    except OSError as e:
        raise ShellError(f"cd: {target}: {e.strerror}") from e

    os.environ["OLDPWD"] = old_pwd
    os.environ["PWD"] = os.getcwd()
    if args and args[0] == "-":
        print(target, file=out)
    return 0


def builtin_pwd(shell, args, out):
    try:
        cwd = os.getcwd()
    except OSError as e:
        raise ShellError(f"pwd: {e.strerror}") from e
    print(cwd, file=out)
    return 0


def builtin_export(shell, args, out):
    if not args:
        raise BuiltinUsageError("export: usage: export VAR=value")
    for arg in args:
        name, sep, value = arg.partition("=")
        if not sep or not name:
            raise BuiltinUsageError(f"export: invalid format: {arg}")
        os.environ[name] = value
    return 0


def builtin_echo(shell, args, out):
    print(" ".join(args), file=out)
    return 0


def builtin_history(shell, args, out):
    """Show command history"""
    count = None
    if args:
        try:
            count = int(args[0])
        except ValueError:
            raise BuiltinUsageError(f"history: invalid number: {args[0]}") from None
    history.show_history(count, out=out)
    return 0


def builtin_alias(shell, args, out):
    """Create or show aliases"""
    aliases = shell.aliases
    if not args:
        for name in sorted(aliases):
            print(f"alias {name}='{aliases[name]}'", file=out)
        return 0

    status = 0
    for arg in args:
        if "=" in arg:
            name, value = arg.split("=", 1)
            aliases[name] = value.strip("'\"")
        elif arg in aliases:
            print(f"alias {arg}='{aliases[arg]}'", file=out)
        else:
            print(f"alias: {arg}: not found", file=sys.stderr)
            status = 1
    return status


def builtin_unalias(shell, args, out):
    """Remove aliases"""
    if not args:
        raise BuiltinUsageError("unalias: usage: unalias name")
    for name in args:
        shell.aliases.pop(name, None)
    return 0


def builtin_jobs(shell, args, out):
    # Finished jobs are reported here once and dropped
    for job_id, state, command in shell.jobs.list(collect=True):
        print(format_job(job_id, state, command), file=out)
    return 0


def builtin_fg(shell, args, out):
    """Take a job out of the table and wait for it"""
    job_id = parse_job_id(args[0]) if args else None
    job = shell.jobs.bring_to_foreground(job_id)
    print(job.command, file=out, flush=True)

    continue_job(job)
    with shell.dispatcher.foreground(job.pgid):
        return wait_all(job.procs)


def builtin_bg(shell, args, out):
    shell.jobs.resume_in_background(parse_job_id(args[0], "bg") if args else None)
    return 0


def builtin_exit(shell, args, out):
    code = 0
    if args:
        try:
            code = int(args[0])
        except ValueError:
            raise BuiltinUsageError(f"exit: {args[0]}: numeric argument required") from None
    raise ShellExit(code)


BUILTINS = {
    "cd": builtin_cd,
    "pwd": builtin_pwd,
    "export": builtin_export,
    "echo": builtin_echo,
    "history": builtin_history,
    "alias": builtin_alias,
    "unalias": builtin_unalias,
    "jobs": builtin_jobs,
    "fg": builtin_fg,
    "bg": builtin_bg,
    "exit": builtin_exit,
    "help": builtin_help,
}


def expand_alias(stage, aliases):
    """
    Replace the leading word of a stage by its alias value.
    Returns: the expanded Stage (or the same one when no alias matches)
    """
    value = aliases.get(stage.name)
    if value is None:
        return stage
    return replace(stage, args=tuple(value.split()) + stage.args[1:])


def execute_builtin(shell, stage):
    """
    Execute built-in command if it matches.
    Returns (executed: bool, exit_code: int)
    """
    handler = BUILTINS.get(stage.name)
    if handler is None:
        return False, 0

    args = list(stage.args[1:])
    if stage.output_file is None:
        return True, handler(shell, args, sys.stdout)

    fd = open_output(stage.output_file, stage.append)
    with os.fdopen(fd, "w") as out:
        return True, handler(shell, args, out)
