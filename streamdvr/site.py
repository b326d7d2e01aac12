import subprocess
import threading

from .capture import CaptureManager, RecorderArgs
from .errors import ConfigurationError, ProbeFailure
from .log import site_logger
from .membership import MembershipController
from .models import ProbeResult, StreamerState
from .monitor import SizeMonitor
from .process import spawn_recorder
from .registry import Registry
from .scheduler import BatchScheduler


class StateProbe:
    """Decides whether a streamer is live and where to record it from.

    ``check(streamer)`` returns a ProbeResult, or raises ProbeFailure when
    the lookup itself could not be done.
    """

    def check(self, streamer):
        raise NotImplementedError


class ScriptProbe(StateProbe):
    """Runs the site's ``m3u8fetch`` script.

    Exit code 0 means the streamer is live, with the stream url on stdout.
    These scripts wrap streamlink/yt-dlp, so new programs can be supported by
    adding a new wrapper instead of new code.
    """

    def __init__(self, site_config, settings, log):
        self.site_config = site_config
        self.settings = settings
        self.log = log

    def command(self, streamer):
        cfg = self.site_config
        return [
            cfg.m3u8fetch,
            cfg.site_url + streamer.name + cfg.url_suffix,
            "1" if self.settings.proxy_enable else "0",
            self.settings.proxy_server,
            "1" if cfg.username else "0",
        ] + cfg.credential_args()

    def check(self, streamer):
        cmd = self.command(streamer)
        self.log.debug(f"{streamer.name} running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True,
                                    timeout=self.site_config.probe_timeout)
        except subprocess.TimeoutExpired:
            raise ProbeFailure(f"{streamer.name} status check timed out")
        except OSError as e:
            raise ProbeFailure(f"{streamer.name} status check could not run: {e}")

        if result.returncode == 0:
            return ProbeResult(online=True, locator="".join(result.stdout.splitlines()))
        if result.stderr:
            self.log.debug(f"{streamer.name} {result.stderr.strip()}")
        return ProbeResult(online=False)


class Site:
    """Everything the DVR tracks for one site.

    Owns the registry, capture manager, size monitor, batch scheduler and
    membership controller, and runs the per-streamer state machine.
    ``exiting`` is the DVR's cancellation token: once set, no status checks
    and no new captures are started.
    """

    def __init__(self, site_config, settings, queue, exiting=None, probe=None,
                 spawn=spawn_recorder, store=None, streamers=None):
        self.site_config = site_config
        self.settings = settings
        self.queue = queue
        self.name = site_config.name
        self.list_name = site_config.list_name
        self.log = site_logger(self.name)
        self.exiting = exiting if exiting is not None else threading.Event()
        self.store = store

        try:
            site_config.validate()
        except ConfigurationError as e:
            self.log.error(str(e))

        self.probe = probe or ScriptProbe(site_config, settings, self.log)
        self.registry = Registry(self.log, on_remove=self._halt_on_remove)
        self.capture = CaptureManager(self, settings, site_config.recorder,
                                      RecorderArgs(site_config, settings), spawn)
        self.monitor = SizeMonitor(self, settings.capture_dir, settings.max_size_mb)
        self.scheduler = BatchScheduler(max(site_config.batch_size, 0), self.log)

        if streamers is None:
            streamers = store.load_streamers() if store is not None else []
        self.membership = MembershipController(self, streamers)
        for uid in self.membership.streamers:
            self.registry.add(uid, name=uid, site=self.name)

        self.log.info(f"{len(self.membership.streamers)} streamer(s) in config")

    def __repr__(self):
        return f"Site({self.name!r})"

    # ── Membership ──

    def add(self, uid, is_temp=False, init=False):
        dirty = self.membership.add_streamer(uid, is_temp=is_temp, init=init)
        if dirty:
            self.write_config()
        return dirty

    def remove(self, uid):
        dirty = self.membership.remove_streamer(uid)
        if dirty:
            self.write_config()
        return dirty

    def pause(self, uid, on=True):
        return self.membership.pause(uid, on)

    def pause_all(self, state):
        self.membership.pause_all(state)

    def process_updates(self, add=True):
        """Apply pending include (add) or exclude (remove) requests from the updates file."""
        if self.store is None:
            return False
        key = "include" if add else "exclude"
        try:
            uids = self.store.take_updates(key)
        except (OSError, ValueError) as e:
            self.log.error(f"Could not read {self.store.updates_file}: {e}")
            return False
        if uids:
            self.log.info(f"{len(uids)} streamer(s) to {key}")

        dirty = self.membership.update_streamers(uids, add=add)
        if dirty:
            self.write_config()
        return dirty

    def write_config(self):
        if self.store is None:
            return
        try:
            self.store.save_streamers(self.membership.streamers)
        except OSError as e:
            self.log.error(f"Could not write {self.store.list_file}: {e}")

    # ── Status polling ──

    def get_streamers(self, init=False):
        """Run one polling cycle: batched status checks, then the size monitor."""
        if self.exiting.is_set():
            self.log.debug("Skipping lookup while exit in progress...")
            return {}

        plan = self.scheduler.plan(self.registry.uids())
        results = self.scheduler.execute(
            plan, lambda uid: self.check_streamer_state(uid, init=init),
            cancel=self.exiting, on_error=self._probe_failed,
        )
        if not self.exiting.is_set():
            self.monitor.check()
        return results

    def refresh(self, streamer, init=False):
        """Re-check one streamer outside the polling cycle."""
        if self.exiting.is_set() or self.registry.get(streamer.uid) is not streamer or init:
            return
        try:
            self.check_streamer_state(streamer.uid)
        except ProbeFailure as e:
            self.log.error(str(e))
            self._probe_failed(streamer.uid, e)
        except Exception as e:
            self.log.error(f"Status check for {streamer.name} failed: {e}")
            self._probe_failed(streamer.uid, e)

    def check_streamer_state(self, uid, init=False):
        streamer = self.registry.get(uid)
        if streamer is None or self.exiting.is_set():
            return None
        result = self.probe.check(streamer)
        self.apply_status(streamer, result, init=init)
        return result

    def apply_status(self, streamer, result, init=False):
        with self.capture.lock:
            self._apply_status(streamer, result, init)

    def _apply_status(self, streamer, result, init):
        if streamer.in_post_process:
            self.log.debug(f"{streamer.name} is post-processing, status update ignored")
            return

        if streamer.capture is not None:
            if not result.online:
                # Sometimes the recording process doesn't end when a streamer
                # stops broadcasting, so terminate it.
                self.log.info(f"{streamer.name} is offline.")
                self.log.debug(f"{streamer.name} is no longer broadcasting, "
                               f"terminating capture process (pid={streamer.capture.pid})")
                self.capture.halt_streamer(streamer)
            return

        prev_state = streamer.state
        streamer.state = StreamerState.STREAMING if result.online else StreamerState.OFFLINE
        if streamer.state is not prev_state:
            self.log.info(f"{streamer.name} is {'streaming' if result.online else 'offline'}.")

        if not result.online:
            return
        if streamer.paused:
            self.log.debug(f"{streamer.name} is paused, recording not started.")
        elif not init:
            cap_info = self.capture.prepare(streamer, result.locator)
            if cap_info is not None:
                self.capture.start(cap_info)

    def _probe_failed(self, uid, exc):
        streamer = self.registry.get(uid)
        if streamer is not None:
            self.apply_status(streamer, ProbeResult(online=False))

    # ── Capture lifecycle ──

    def _halt_on_remove(self, uid):
        self.capture.halt(uid)

    def halt_all(self):
        self.capture.halt_all()

    def num_captures_in_progress(self):
        return self.capture.num_in_progress()

    def mark_processing(self, streamer):
        # Remember post-processing is happening, so that the offline check
        # does not kill postprocess jobs.
        with self.capture.lock:
            streamer.post_process = True
            streamer.state = StreamerState.POST_PROCESSING

    def clear_processing(self, streamer):
        with self.capture.lock:
            self.capture.store_cap_info(streamer, "", None)
            streamer.post_process = False
        self.refresh(streamer)
