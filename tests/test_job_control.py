import os
import signal
import subprocess
import time
import unittest

from TinyShell.errors import InvalidJobReference, UnsupportedOperation
from TinyShell.job_control import (
    Job,
    JobManager,
    JobState,
    continue_job,
    format_finished,
    format_job,
    parse_job_id,
)


class TestJobManager(unittest.TestCase):
    def setUp(self):
        self.jobs = JobManager()

    def test_ids_start_at_one_and_increase(self):
        self.assertEqual(self.jobs.register("sleep 1", os.getpid()), 1)
        self.assertEqual(self.jobs.register("sleep 2", os.getpid()), 2)
        self.assertEqual(len(self.jobs), 2)

    def test_ids_are_never_reused(self):
        self.jobs.register("a", os.getpid())
        self.jobs.register("b", os.getpid())
        self.jobs.bring_to_foreground(2)
        self.assertEqual(self.jobs.register("c", os.getpid()), 3)

    def test_list_snapshot(self):
        self.jobs.register("sleep 10 | cat", os.getpid())
        self.jobs.register("yes", os.getpid())
        self.assertEqual(self.jobs.list(), [
            (1, JobState.RUNNING, "sleep 10 | cat"),
            (2, JobState.RUNNING, "yes"),
        ])

    def test_fg_without_id_takes_highest(self):
        self.jobs.register("first", os.getpid())
        self.jobs.register("second", os.getpid())
        self.jobs.register("third", os.getpid())
        self.jobs.bring_to_foreground(3)

        job = self.jobs.bring_to_foreground()
        self.assertEqual((job.id, job.command), (2, "second"))
        self.assertEqual([j[0] for j in self.jobs.list()], [1])

    def test_fg_with_empty_table(self):
        with self.assertRaises(InvalidJobReference):
            self.jobs.bring_to_foreground()

    def test_fg_with_unknown_id(self):
        self.jobs.register("a", os.getpid())
        with self.assertRaises(InvalidJobReference):
            self.jobs.bring_to_foreground(7)
        self.assertEqual(len(self.jobs), 1)

    def test_bg_is_unsupported(self):
        self.jobs.register("a", os.getpid())
        with self.assertRaises(UnsupportedOperation):
            self.jobs.resume_in_background()
        with self.assertRaises(UnsupportedOperation):
            self.jobs.resume_in_background(1)

    def test_mark_done_and_collect(self):
        self.jobs.register("a", os.getpid())
        self.jobs.register("b", os.getpid())
        self.jobs.mark_done(2, 0)

        finished = self.jobs.collect_finished()
        self.assertEqual([job.id for job in finished], [2])
        self.assertEqual(finished[0].state, JobState.DONE)
        self.assertEqual(self.jobs.collect_finished(), [])
        self.assertEqual([j[0] for j in self.jobs.list()], [1])

    def test_list_with_collect(self):
        self.jobs.register("a", os.getpid())
        self.jobs.register("b", os.getpid())
        self.jobs.mark_done(1, 0)

        self.assertEqual(self.jobs.list(collect=True), [
            (1, JobState.DONE, "a"),
            (2, JobState.RUNNING, "b"),
        ])
        # A job finishing after the listing is still collected later
        self.jobs.mark_done(2, 3)
        finished = self.jobs.collect_finished()
        self.assertEqual([(job.id, job.returncode) for job in finished], [(2, 3)])
        self.assertEqual(len(self.jobs), 0)

    def test_mark_done_after_fg_is_ignored(self):
        self.jobs.register("a", os.getpid())
        self.jobs.bring_to_foreground(1)
        self.jobs.mark_done(1, 0)
        self.assertEqual(len(self.jobs), 0)


class TestStoppedState(unittest.TestCase):
    def setUp(self):
        self.proc = subprocess.Popen(["sleep", "30"], start_new_session=True)
        self.jobs = JobManager()
        self.job_id = self.jobs.register("sleep 30", self.proc.pid, pgid=self.proc.pid, procs=[self.proc])

    def tearDown(self):
        self.proc.kill()
        self.proc.wait()

    def wait_for_state(self, state, timeout=5):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.jobs.list()[0][1] is state:
                return True
            time.sleep(0.05)
        return False

    def test_stop_and_continue(self):
        self.assertTrue(self.wait_for_state(JobState.RUNNING))

        os.kill(self.proc.pid, signal.SIGSTOP)
        self.assertTrue(self.wait_for_state(JobState.STOPPED))

        continue_job(self.jobs.get(self.job_id))
        self.assertTrue(self.wait_for_state(JobState.RUNNING))


class TestHelpers(unittest.TestCase):
    def test_parse_job_id(self):
        self.assertEqual(parse_job_id("3"), 3)
        self.assertEqual(parse_job_id("%12"), 12)
        with self.assertRaises(InvalidJobReference):
            parse_job_id("abc")

    def test_format_job(self):
        self.assertEqual(format_job(1, JobState.RUNNING, "sleep 5"), "[1]  Running\tsleep 5")
        self.assertEqual(format_job(4, JobState.STOPPED, "a | b"), "[4]  Stopped\ta | b")

    def test_format_finished(self):
        job = Job(2, 100, "make", state=JobState.DONE, returncode=0)
        self.assertEqual(format_finished(job), "[2]+  Done\tmake")
        job.returncode = 2
        self.assertEqual(format_finished(job), "[2]+  Exit 2\tmake")


if __name__ == "__main__":
    unittest.main()
