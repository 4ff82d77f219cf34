import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from contextlib import nullcontext

from TinyShell.config import REDIRECT_MODE, SHELL_NAME
from TinyShell.errors import CommandNotFound, ExecutionError, RedirectionIOError
from TinyShell.parser import validate_pipeline

log = logging.getLogger("tinyshell.executor")


def resolve(name):
    """Find a program on PATH. Returns: absolute path"""
    path = shutil.which(name)
    if path is None:
        raise CommandNotFound(name)
    return path


def open_input(path):
    try:
        return os.open(os.path.expanduser(path), os.O_RDONLY)
    except OSError as e:
        raise RedirectionIOError(path, e.strerror) from e


def open_output(path, append=False):
    """Open a > / >> target. Returns: file descriptor"""
    flags = os.O_WRONLY | os.O_CREAT | (os.O_APPEND if append else os.O_TRUNC)
    try:
        return os.open(os.path.expanduser(path), flags, REDIRECT_MODE)
    except OSError as e:
        raise RedirectionIOError(path, e.strerror) from e


def _foreground_child():
    # Ctrl+Z is advisory: foreground children keep running
    signal.signal(signal.SIGTSTP, signal.SIG_IGN)


def _background_child(pgid):
    def join_group():
        try:
            os.setpgid(0, pgid)
        except OSError:
            # Group leader already gone
            os.setpgid(0, 0)
    return join_group


def launch_pipeline(stages, background=False):
    """
    Start one process per stage, stdout of stage i feeding stdin of stage i+1.
    Every program is resolved and every redirection opened before anything runs.
    Returns: list of Popen objects in stage order
    """
    validate_pipeline(stages)
    paths = [resolve(stage.name) for stage in stages]

    first, last = stages[0], stages[-1]
    procs, opened = [], []

    try:
        stdin = None
        if first.input_file is not None:
            stdin = open_input(first.input_file)
            opened.append(stdin)

        stdout = None
        if last.output_file is not None:
            stdout = open_output(last.output_file, last.append)
            opened.append(stdout)

        pipes = []
        for _ in range(len(stages) - 1):
            read_fd, write_fd = os.pipe()
            opened.extend((read_fd, write_fd))
            pipes.append((read_fd, write_fd))

        sys.stdout.flush()
        sys.stderr.flush()

        pgid = 0
        for idx, (stage, path) in enumerate(zip(stages, paths)):
            stage_in = stdin if idx == 0 else pipes[idx - 1][0]
            stage_out = stdout if idx == len(stages) - 1 else pipes[idx][1]
            preexec = _background_child(pgid) if background else _foreground_child

            try:
                p = subprocess.Popen(
                    list(stage.args),
                    executable=path,
                    stdin=stage_in,
                    stdout=stage_out,
                    preexec_fn=preexec
                )
            except (OSError, subprocess.SubprocessError) as e:
                if procs:
                    log.warning("%d stage(s) of '%s' left running after start failure",
                                len(procs), " | ".join(s.text for s in stages))
                reason = getattr(e, "strerror", None) or str(e)
                raise ExecutionError(f"{stage.name}: {reason}") from e

            log.debug("started pid=%d stage=%d: %s", p.pid, idx, path)
            procs.append(p)
            if background and pgid == 0:
                pgid = p.pid

    finally:
        # Children hold their own copies
        for fd in opened:
            os.close(fd)

    return procs


def wait_all(procs):
    """
    Wait for every process in stage order.
    Returns: first non-zero exit code (128+N for a signal), else 0
    """
    status = 0
    for p in procs:
        code = p.wait()
        if code < 0:
            code = 128 - code
        if code and not status:
            status = code
    return status


def _reap_job(jobs, job_id, procs):
    jobs.mark_done(job_id, wait_all(procs))


def start_job(stages, procs, jobs):
    """Register a launched pipeline as a background job and reap it in a thread"""
    command = " | ".join(stage.text for stage in stages)
    last = procs[-1]
    job_id = jobs.register(command, last.pid, pgid=procs[0].pid, procs=procs)

    waiter = threading.Thread(
        target=_reap_job,
        args=(jobs, job_id, procs),
        name=f"job-{job_id}",
        daemon=True
    )
    jobs.attach_waiter(job_id, waiter)
    waiter.start()

    print(f"[{job_id}] {last.pid}", flush=True)
    return job_id


def execute_pipeline(stages, jobs, background=False, dispatcher=None):
    """
    Execute pipeline of stages.
    Returns: exit_code
    """
    if background:
        procs = launch_pipeline(stages, background=True)
        start_job(stages, procs, jobs)
        return 0

    with dispatcher.foreground() if dispatcher else nullcontext():
        procs = launch_pipeline(stages)
        exit_code = wait_all(procs)

    if exit_code != 0:
        print(f"{SHELL_NAME}: process exited with code {exit_code}", file=sys.stderr)

    return exit_code
