import collections
import logging
import os
import shutil
import subprocess
import threading


class PostProcessQueue:
    """FIFO of finished recordings shared by every site.

    The head entry stays queued while it is being worked on; ``task_done``
    pops it.  ``on_drain`` fires when an enqueue finds the queue empty,
    which is the only time the consumer is idle.
    """

    def __init__(self, on_drain=None):
        self.on_drain = on_drain
        self._entries = collections.deque()
        self._lock = threading.Lock()

    def enqueue(self, entry):
        with self._lock:
            self._entries.append(entry)
            first = len(self._entries) == 1
        if first and self.on_drain is not None:
            self.on_drain()
        return first

    def head(self):
        with self._lock:
            return self._entries[0] if self._entries else None

    def task_done(self):
        """Drop the finished head entry and return the next one (or None)."""
        with self._lock:
            if self._entries:
                self._entries.popleft()
            return self._entries[0] if self._entries else None

    def __len__(self):
        with self._lock:
            return len(self._entries)


def remux(raw_file, out_file, ffmpeg_path, logger, timeout=600):
    """Remux a recorded .ts file into the container implied by ``out_file``."""
    ffmpeg_cmd = [
        ffmpeg_path, "-i", raw_file,
        "-c", "copy", "-map", "0",
        "-loglevel", "error", out_file, "-y",
    ]
    if out_file.endswith(".mp4"):
        ffmpeg_cmd[-2:-2] = ["-bsf:a", "aac_adtstoasc", "-movflags", "+faststart"]

    logger.debug(f"Starting remux: {' '.join(ffmpeg_cmd)}")

    try:
        result = subprocess.run(ffmpeg_cmd, capture_output=True, text=True, timeout=timeout)
        if result.returncode == 0 and os.path.exists(out_file):
            return True, None

        logger.error(f"Remux failed, returncode: {result.returncode}")
        if result.stderr:
            logger.error(f"FFmpeg stderr: {result.stderr.strip()}")

        # Fallback: strip metadata streams
        logger.warning("Attempting fallback remux without metadata streams")
        fallback_cmd = [
            ffmpeg_path, "-i", raw_file,
            "-map", "0:v?", "-map", "0:a?",
            "-c", "copy",
            "-loglevel", "error", out_file, "-y",
        ]
        fb = subprocess.run(fallback_cmd, capture_output=True, text=True, timeout=timeout)
        if fb.returncode == 0 and os.path.exists(out_file):
            return True, None
        if fb.stderr:
            logger.error(f"Fallback stderr: {fb.stderr.strip()}")
        return False, f"code {fb.returncode}"

    except subprocess.TimeoutExpired:
        logger.error("Remux timed out")
        return False, "timeout"
    except FileNotFoundError:
        logger.error(f"{ffmpeg_path} not found in PATH")
        return False, "ffmpeg not found"


class PostProcessor:
    """Single consumer for the post-process queue.

    Each entry is moved (or remuxed) from the capture directory into the
    site's complete directory on a worker thread, one entry at a time, in
    enqueue order.
    """

    def __init__(self, queue, settings, ffmpeg_path="ffmpeg", ffmpeg_timeout=600):
        self.queue = queue
        self.settings = settings
        self.ffmpeg_path = ffmpeg_path
        self.ffmpeg_timeout = ffmpeg_timeout
        self._thread = None
        self._lock = threading.Lock()
        queue.on_drain = self.drain

    def drain(self):
        # Only called on an empty-to-one transition, so any previous worker
        # has already seen the queue empty and is on its way out.
        with self._lock:
            self._thread = threading.Thread(target=self._run, daemon=True, name="PostProcessor")
            self._thread.start()

    def join(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)

    def is_busy(self):
        return len(self.queue) > 0

    def _run(self):
        entry = self.queue.head()
        while entry is not None:
            site = entry.site
            site.mark_processing(entry.streamer)
            try:
                self.process(entry)
            except Exception as e:
                site.log.error(f"{entry.streamer.name}: post-processing {entry.filename} failed: {e}")
            # The head must always be popped, or later enqueues never signal again
            try:
                site.clear_processing(entry.streamer)
            except Exception as e:
                site.log.error(f"{entry.streamer.name}: could not release after post-processing: {e}")
            entry = self.queue.task_done()

    def complete_dir(self, site, streamer):
        complete_dir = self.settings.complete_dir
        if self.settings.site_subdir:
            complete_dir = os.path.join(complete_dir, site.name)
        if self.settings.streamer_subdir:
            subdir = streamer.name
            if self.settings.include_site_in_dir:
                subdir += "_" + site.list_name
            complete_dir = os.path.join(complete_dir, subdir)
        os.makedirs(complete_dir, exist_ok=True)
        return complete_dir

    def process(self, entry):
        site = entry.site
        log = site.log
        raw_file = os.path.join(self.settings.capture_dir, entry.filename + ".ts")
        complete_dir = self.complete_dir(site, entry.streamer)
        convert = self.settings.auto_convert_type

        if convert not in ("mp4", "mkv"):
            shutil.move(raw_file, os.path.join(complete_dir, entry.filename + ".ts"))
            log.info(f"{entry.streamer.name} done moving {entry.filename}.ts")
            return

        out_file = os.path.join(complete_dir, f"{entry.filename}.{convert}")
        log.info(f"{entry.streamer.name} converting to {convert}: {entry.filename}.{convert}")
        ok, error = remux(raw_file, out_file, self.ffmpeg_path, log, self.ffmpeg_timeout)
        if not ok:
            log.error(f"{entry.streamer.name} {entry.filename}.ts could not be converted ({error}), keeping .ts")
            shutil.move(raw_file, os.path.join(complete_dir, entry.filename + ".ts"))
            return

        if self.settings.keep_ts_file:
            shutil.move(raw_file, os.path.join(complete_dir, entry.filename + ".ts"))
        else:
            os.remove(raw_file)
        log.info(f"{entry.streamer.name} done converting {entry.filename}.{convert}")
