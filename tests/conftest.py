import itertools
import os
import signal
import threading

import pytest

from streamdvr.capture import MB
from streamdvr.config import RecordingSettings, SiteConfig
from streamdvr.errors import ProbeFailure, SpawnFailure
from streamdvr.models import ProbeResult
from streamdvr.postprocess import PostProcessQueue
from streamdvr.site import Site, StateProbe

_pids = itertools.count(1000)


class FakeHandle:
    """Stands in for a recorder process; the test decides when it exits."""

    def __init__(self, cmd, log_file=None):
        self.cmd = cmd
        self.log_file = log_file
        self.pid = next(_pids)
        self.signals = []
        self.killed = False
        self.callback = None

    def terminate(self, sig=signal.SIGINT):
        self.signals.append(sig)
        return True

    def kill_tree(self, logger=None, timeout=5):
        self.killed = True

    def watch(self, callback):
        self.callback = callback

    def finish(self, code=0):
        self.callback(code)


class FakeSpawner:
    def __init__(self):
        self.handles = []
        self.fail = False

    def __call__(self, cmd, log_file=None):
        if self.fail:
            raise SpawnFailure(f"{cmd[0]}: No such file or directory")
        handle = FakeHandle(cmd, log_file)
        self.handles.append(handle)
        return handle


class FakeProbe(StateProbe):
    def __init__(self):
        self.online = {}
        self.failing = set()
        self.calls = []
        self._lock = threading.Lock()

    def check(self, streamer):
        with self._lock:
            self.calls.append(streamer.uid)
        if streamer.uid in self.failing:
            raise ProbeFailure(f"{streamer.name} status check timed out")
        online = self.online.get(streamer.uid, False)
        return ProbeResult(online=online, locator=f"https://cdn.example.com/{streamer.uid}.m3u8" if online else "")


class DrainCounter:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


def write_capture(settings, filename, megabytes):
    path = os.path.join(settings.capture_dir, filename)
    with open(path, 'wb') as f:
        f.truncate(int(megabytes * MB))
    return path


@pytest.fixture
def settings(tmp_path):
    capture_dir = tmp_path / "capture"
    complete_dir = tmp_path / "complete"
    capture_dir.mkdir()
    complete_dir.mkdir()
    return RecordingSettings(
        capture_dir=str(capture_dir),
        complete_dir=str(complete_dir),
        min_size_mb=5,
        max_size_mb=0,
        auto_convert_type="ts",
    )


@pytest.fixture
def site_config():
    return SiteConfig(
        name="Twitch",
        site_url="https://twitch.tv/",
        m3u8fetch="/opt/dvr/scripts/m3u8_streamlink.sh",
        recorder="/opt/dvr/scripts/record_ffmpeg.sh",
        batch_size=2,
    )


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def drains():
    return DrainCounter()


@pytest.fixture
def queue(drains):
    return PostProcessQueue(on_drain=drains)


@pytest.fixture
def make_site(site_config, settings, queue, probe, spawner):
    def _make(streamers=None, store=None, **overrides):
        for key, value in overrides.items():
            setattr(settings, key, value)
        return Site(site_config, settings, queue, probe=probe, spawn=spawner,
                    store=store, streamers=streamers)
    return _make
