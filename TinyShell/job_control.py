import logging
import os
import signal
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import psutil

from TinyShell.errors import InvalidJobReference, UnsupportedOperation

log = logging.getLogger("tinyshell.jobs")


class JobState(Enum):
    RUNNING = "Running"
    STOPPED = "Stopped"
    DONE = "Done"


@dataclass
class Job:
    """A pipeline launched in the background"""
    id: int
    pid: int
    command: str
    pgid: Optional[int] = None
    procs: list = field(default_factory=list)
    state: JobState = JobState.RUNNING
    returncode: Optional[int] = None
    waiter: Optional[threading.Thread] = None


def _refresh_state(job):
    """Read the real OS status of a live job's last process"""
    if job.state is JobState.DONE:
        return
    try:
        status = psutil.Process(job.pid).status()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        # Exited but not reaped yet: the waiter thread will mark it done
        return
    job.state = JobState.STOPPED if status == psutil.STATUS_STOPPED else JobState.RUNNING


def parse_job_id(arg, command="fg"):
    """Accept "3" or "%3"."""
    try:
        return int(arg.lstrip("%"))
    except ValueError:
        raise InvalidJobReference(f"{command}: invalid job id: {arg}") from None


def format_job(job_id, state, command):
    return f"[{job_id}]  {state.value}\t{command}"


def format_finished(job):
    status = "Done" if not job.returncode else f"Exit {job.returncode}"
    return f"[{job.id}]+  {status}\t{job.command}"


def continue_job(job):
    """Send SIGCONT to a stopped job's process group"""
    _refresh_state(job)
    if job.state is not JobState.STOPPED:
        return
    try:
        os.killpg(job.pgid or job.pid, signal.SIGCONT)
        job.state = JobState.RUNNING
    except ProcessLookupError:
        pass


class JobManager:
    """
    Table of background jobs: id -> Job.
    Every read and write goes through one lock; ids start at 1 and are never reused.
    """

    def __init__(self):
        self._jobs = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._jobs)

    def register(self, command, pid, pgid=None, procs=()):
        """Add a running job. Returns: job id"""
        with self._lock:
            job_id = self._next_id
            self._next_id += 1
            self._jobs[job_id] = Job(job_id, pid, command, pgid, list(procs))
        log.debug("registered job %d pid=%d: %s", job_id, pid, command)
        return job_id

    def attach_waiter(self, job_id, thread):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.waiter = thread

    def get(self, job_id):
        with self._lock:
            return self._jobs.get(job_id)

    def list(self, collect=False):
        """
        Snapshot of (id, state, command), ordered by id.
        With collect, finished jobs in the snapshot are removed in the same step.
        """
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: j.id)
            for job in jobs:
                _refresh_state(job)
                if collect and job.state is JobState.DONE:
                    del self._jobs[job.id]
            return [(job.id, job.state, job.command) for job in jobs]

    def mark_done(self, job_id, returncode):
        """Completion callback from the waiter thread"""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                # Already taken by fg
                return
            job.state = JobState.DONE
            job.returncode = returncode
        log.debug("job %d finished with code %s", job_id, returncode)

    def collect_finished(self):
        """Remove and return the jobs that have finished since the last call"""
        with self._lock:
            done = [job for job in sorted(self._jobs.values(), key=lambda j: j.id)
                    if job.state is JobState.DONE]
            for job in done:
                del self._jobs[job.id]
        return done

    def bring_to_foreground(self, job_id=None):
        """
        Remove a job from the table and hand it to the caller.
        Without an id the highest job id is taken.
        """
        with self._lock:
            if not self._jobs:
                raise InvalidJobReference("fg: no current job")
            if job_id is None:
                job_id = max(self._jobs)
            job = self._jobs.pop(job_id, None)
        if job is None:
            raise InvalidJobReference(f"fg: {job_id}: no such job")
        log.debug("job %d brought to foreground", job_id)
        return job

    def resume_in_background(self, job_id=None):
        raise UnsupportedOperation("bg: not supported")
