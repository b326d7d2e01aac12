import logging
import signal
import subprocess
import threading

import psutil

from .errors import SpawnFailure


# ────────────────────────────────────────────────
#          Process Management
# ────────────────────────────────────────────────

class CaptureHandle:
    """A running recorder process.

    ``watch()`` starts a daemon thread that waits for the process to exit,
    closes the debug log sink (if any) and then calls the callback with the
    exit code.
    """

    def __init__(self, proc, log_sink=None):
        self.proc = proc
        self.log_sink = log_sink
        self._watcher = None

    @property
    def pid(self):
        return self.proc.pid

    @property
    def returncode(self):
        return self.proc.returncode

    def is_alive(self):
        return self.proc.poll() is None

    def terminate(self, sig=signal.SIGINT):
        """Deliver ``sig`` to the recorder.  Returns False if it already exited."""
        try:
            psutil.Process(self.proc.pid).send_signal(sig)
            return True
        except psutil.NoSuchProcess:
            return False

    def watch(self, callback):
        self._watcher = threading.Thread(
            target=self._wait, args=(callback,),
            daemon=True, name=f"capture-{self.proc.pid}",
        )
        self._watcher.start()

    def kill_tree(self, logger=None, timeout=5):
        """Kill the recorder and all its children, then wait for the exit handler.

        Once this returns the watcher callback has run, so a recording the
        exit handler queues for post-processing is already queued.
        """
        log = logger or logging.getLogger(__name__)
        try:
            parent = psutil.Process(self.proc.pid)
            procs = parent.children(recursive=True) + [parent]
        except psutil.NoSuchProcess:
            procs = []
        except psutil.Error as e:
            log.warning(f"Cannot inspect PID {self.proc.pid}: {e}")
            procs = []

        for proc in procs:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        if procs:
            gone, alive = psutil.wait_procs(procs, timeout=timeout)
            if alive:
                log.warning(f"Some processes still alive after kill: {[p.pid for p in alive]}")
            else:
                log.info(f"Killed process tree for PID {self.proc.pid} ({len(procs) - 1} children)")

        if self._watcher is not None:
            self._watcher.join(timeout)

    def _wait(self, callback):
        code = self.proc.wait()
        if self.log_sink is not None:
            self.log_sink.close()
        callback(code)


def spawn_recorder(cmd, log_file=None):
    """Start the recorder, optionally sending its stdout/stderr to ``log_file``.

    Raises SpawnFailure if the executable cannot be started.
    """
    sink = open(log_file, 'w', encoding='utf-8') if log_file else None
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=sink if sink else subprocess.DEVNULL,
            stderr=subprocess.STDOUT if sink else subprocess.DEVNULL,
        )
    except OSError as e:
        if sink is not None:
            sink.close()
        raise SpawnFailure(f"{cmd[0]}: {e}") from e
    return CaptureHandle(proc, sink)
