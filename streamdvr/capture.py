import datetime
import os
import signal
import threading

from .errors import SpawnFailure
from .models import CaptureInfo, PostProcessEntry, StreamerState
from .process import spawn_recorder

MB = 1048576


def size_mb(size_bytes):
    """Whole megabytes, rounded half up."""
    return int(size_bytes / MB + 0.5)


class RecorderArgs:
    """Builds the recorder argument list for one site.

    Positional layout: output path, source url, proxy enable, proxy server,
    debug flag, auth flag, username flag, password flag, then any extra
    site parameters.
    """

    def __init__(self, site_config, settings):
        self.site_config = site_config
        self.settings = settings

    def __call__(self, url, filename, params=None):
        args = [
            os.path.join(self.settings.capture_dir, filename + ".ts"),
            url,
            "1" if self.settings.proxy_enable else "0",
            self.settings.proxy_server,
            "1" if self.settings.debug_recorder else "0",
            "1" if self.site_config.username else "0",
        ]
        args.extend(self.site_config.credential_args())
        if params:
            args.extend(params)
        return args


class CaptureManager:
    """Spawns, halts and reaps the recorder processes of one site.

    ``site`` supplies the registry, the post-process queue, the logger,
    the cancellation token and ``refresh()``.

    ``lock`` guards every read-then-write of ``streamer.capture``: polling
    workers, recorder watchers and the post-processor all reach it.
    """

    def __init__(self, site, settings, recorder, args_builder, spawn=spawn_recorder):
        self.site = site
        self.settings = settings
        self.recorder = recorder
        self.args_builder = args_builder
        self.spawn = spawn
        self.lock = threading.RLock()

    @property
    def log(self):
        return self.site.log

    def get_filename(self, name):
        site = self.site.list_name + "_" if self.settings.include_site_in_file else ""
        return f"{name}_{site}{datetime.datetime.now().strftime(self.settings.date_format)}"

    def setup_capture(self, uid):
        streamer = self.site.registry.get(uid)
        if streamer is None:
            return False
        if streamer.capture is not None:
            self.log.debug(f"{streamer.name} is already capturing")
            return False
        return True

    def prepare(self, streamer, locator, params=None):
        """Returns a CaptureInfo, or None when the streamer cannot start a capture."""
        if not self.setup_capture(streamer.uid):
            return None
        filename = self.get_filename(streamer.name)
        url = self.site.site_config.site_url + streamer.name if self.site.site_config.record_from_site_url else locator
        return CaptureInfo(streamer=streamer, filename=filename, spawn_args=self.args_builder(url, filename, params))

    def start(self, cap_info):
        streamer = cap_info.streamer
        if self.site.exiting.is_set():
            self.log.debug(f"{streamer.name} not recording, exit in progress")
            return False

        fullname = cap_info.filename + ".ts"
        cmd = [self.recorder] + list(cap_info.spawn_args)
        self.log.debug(f"Starting recording: {' '.join(cmd)}")

        log_file = None
        if self.settings.debug_recorder:
            log_file = os.path.join(self.settings.capture_dir, cap_info.filename + ".log")

        try:
            capture = self.spawn(cmd, log_file)
        except SpawnFailure as e:
            self.log.error(f"{streamer.name} recording failed to start: {e}")
            streamer.state = StreamerState.OFFLINE
            return False

        if not capture.pid:
            self.log.error(f"{streamer.name} recording failed to start: no process id")
            streamer.state = StreamerState.OFFLINE
            return False

        self.log.info(f"{streamer.name} recording started: {fullname}")
        self.store_cap_info(streamer, fullname, capture)
        capture.watch(lambda code: self.on_exit(streamer, cap_info.filename, code))
        return True

    def store_cap_info(self, streamer, filename, capture):
        streamer.filename = filename
        streamer.capture = capture
        if capture is None:
            streamer.state = StreamerState.OFFLINE
            streamer.filesize = 0
            streamer.stuck_count = 0
        else:
            streamer.state = StreamerState.CAPTURING

    def on_exit(self, streamer, filename, code=None):
        """Resolve a finished recording: discard it, or hand it to post-processing."""
        self.log.debug(f"{streamer.name} recorder exited (code={code})")
        with self.lock:
            self._resolve_exit(streamer, filename)
        self.site.refresh(streamer)

    def _resolve_exit(self, streamer, filename):
        fullname = filename + ".ts"
        path = os.path.join(self.settings.capture_dir, fullname)
        try:
            size = os.path.getsize(path)
        except FileNotFoundError:
            self.log.error(f"{streamer.name}, {fullname} not found in capture directory, "
                           f"cannot convert to {self.settings.auto_convert_type}")
            self.store_cap_info(streamer, "", None)
            return
        except OSError as e:
            self.log.error(f"{streamer.name}: {e}")
            self.store_cap_info(streamer, "", None)
            return

        mb = size / MB
        if mb < self.settings.min_size_mb:
            self.log.info(f"{streamer.name} recording automatically deleted "
                          f"(size={mb:.2f} < minSize={self.settings.min_size_mb})")
            try:
                os.remove(path)
            except OSError as e:
                self.log.error(f"{streamer.name}: could not delete {fullname}: {e}")
            self.store_cap_info(streamer, "", None)
        else:
            streamer.state = StreamerState.POST_PROCESSING
            self.site.queue.enqueue(PostProcessEntry(site=self.site, streamer=streamer, filename=filename))

    def halt(self, uid):
        streamer = self.site.registry.get(uid)
        if streamer is None:
            return False
        return self.halt_streamer(streamer)

    def halt_streamer(self, streamer):
        # Post-process jobs are never killed, or the recording can get lost
        if streamer.capture is None or streamer.in_post_process:
            return False
        self.log.debug(f"{streamer.name} halting capture (pid={streamer.capture.pid})")
        streamer.capture.terminate(signal.SIGINT)
        return True

    def halt_all(self):
        for streamer in self.site.registry.list():
            self.halt_streamer(streamer)

    def num_in_progress(self):
        return sum(1 for streamer in self.site.registry.list() if streamer.capture is not None)
