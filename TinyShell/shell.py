import argparse
import logging
import os
import sys

from TinyShell import config
from TinyShell.builtin import execute_builtin, expand_alias
from TinyShell.errors import ShellError, ShellExit
from TinyShell.executor import execute_pipeline
from TinyShell.history import add_to_history, init_readline, load_history, save_history
from TinyShell.job_control import JobManager, format_finished
from TinyShell.parser import parse_command
from TinyShell.signals import SignalDispatcher

log = logging.getLogger("tinyshell.shell")


def prompt():
    """Generate shell prompt"""
    user = os.getenv("USER") or os.getenv("USERNAME") or "user"
    try:
        cwd = os.getcwd()
    except OSError:
        return "> "
    base = os.path.basename(cwd) or "/"
    return f"{user}@{config.SHELL_NAME}:{base}$ "


class Shell:
    """Interpreter state: last exit status, aliases, background jobs"""

    def __init__(self, strict=config.STRICT_QUOTES):
        self.strict = strict
        self.last_status = 0
        self.aliases = dict(config.DEFAULT_ALIASES)
        self.jobs = JobManager()
        self.dispatcher = SignalDispatcher(prompt=prompt)

    def evaluate(self, line):
        """
        Parse and run one command line.
        Returns: exit_code
        """
        stages, background = parse_command(line, self.last_status, self.strict)
        if not stages:
            return self.last_status

        if len(stages) == 1:
            stage = expand_alias(stages[0], self.aliases)
            if not stage.args:
                return self.last_status
            executed, exit_code = execute_builtin(self, stage)
            if executed:
                return exit_code
            stages = [stage]

        return execute_pipeline(stages, self.jobs, background, self.dispatcher)

    def run_line(self, line):
        """Evaluate a line, reporting errors instead of raising them"""
        try:
            self.last_status = self.evaluate(line)
        except ShellError as e:
            log.debug("%s while evaluating %r", type(e).__name__, line)
            print(f"{config.SHELL_NAME}: {e}", file=sys.stderr)
            self.last_status = e.exit_status
        return self.last_status

    def report_finished_jobs(self):
        for job in self.jobs.collect_finished():
            print(format_finished(job))

    def main_loop(self):
        """Main shell loop. Returns: exit code"""
        self.dispatcher.install()
        init_readline()
        load_history()

        code = self.last_status
        try:
            while True:
                self.report_finished_jobs()
                try:
                    line = input(prompt()).strip()
                except EOFError:
                    print()
                    code = self.last_status
                    break

                if not line:
                    continue

                try:
                    self.run_line(line)
                except ShellExit as e:
                    add_to_history(line)
                    code = e.code
                    break
                add_to_history(line)

        finally:
            save_history()
            print("Goodbye!")

        return code


def build_arg_parser():
    parser = argparse.ArgumentParser(prog=config.SHELL_NAME, description="A small command interpreter")
    parser.add_argument("-c", dest="command", metavar="COMMAND",
                        help="evaluate COMMAND and exit with its status")
    parser.add_argument("--strict-quotes", action="store_true", default=config.STRICT_QUOTES,
                        help="reject lines with an unterminated quote")
    return parser


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr
    )

    shell = Shell(strict=args.strict_quotes)
    if args.command is not None:
        try:
            return shell.run_line(args.command)
        except ShellExit as e:
            return e.code

    return shell.main_loop()
