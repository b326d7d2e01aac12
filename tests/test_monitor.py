import signal

from conftest import write_capture

from streamdvr.models import StreamerState


def capturing_site(make_site, **overrides):
    site = make_site(["alice"], **overrides)
    streamer = site.registry.get("alice")
    site.capture.start(site.capture.prepare(streamer, "https://cdn.example.com/alice.m3u8"))
    return site, streamer


def test_identical_sizes_count_up_then_halt_once(make_site, spawner, settings):
    site, streamer = capturing_site(make_site)
    handle = spawner.handles[0]
    write_capture(settings, streamer.filename, 50)

    assert site.monitor.check() == []
    assert streamer.filesize == 50
    assert streamer.stuck_count == 0

    assert site.monitor.check() == []
    assert streamer.stuck_count == 1
    assert handle.signals == []

    assert site.monitor.check() == ["alice"]
    assert handle.signals == [signal.SIGINT]
    assert streamer.stuck_count == 0


def test_growing_file_is_never_stuck(make_site, spawner, settings):
    site, streamer = capturing_site(make_site)
    for mb in (10, 20, 30, 40):
        write_capture(settings, streamer.filename, mb)
        site.monitor.check()

    assert streamer.stuck_count == 0
    assert streamer.filesize == 40
    assert spawner.handles[0].signals == []


def test_sub_megabyte_growth_still_counts_as_stuck(make_site, spawner, settings):
    site, streamer = capturing_site(make_site)
    write_capture(settings, streamer.filename, 50)
    site.monitor.check()
    write_capture(settings, streamer.filename, 50.3)
    site.monitor.check()

    assert streamer.stuck_count == 1


def test_max_size_zero_never_halts(make_site, spawner, settings):
    site, streamer = capturing_site(make_site, max_size_mb=0)
    for mb in (500, 1000, 2000):
        write_capture(settings, streamer.filename, mb)
        site.monitor.check()

    assert spawner.handles[0].signals == []


def test_max_size_reached_halts_once(make_site, spawner, settings):
    site, streamer = capturing_site(make_site, max_size_mb=100)
    write_capture(settings, streamer.filename, 99)
    assert site.monitor.check() == []

    write_capture(settings, streamer.filename, 100)
    assert site.monitor.check() == ["alice"]
    assert spawner.handles[0].signals == [signal.SIGINT]


def test_stuck_and_oversize_in_same_pass_is_one_halt(make_site, spawner, settings):
    site, streamer = capturing_site(make_site, max_size_mb=10)
    streamer.filesize = 50
    streamer.stuck_count = 1
    write_capture(settings, streamer.filename, 50)

    assert site.monitor.check() == ["alice"]
    assert spawner.handles[0].signals == [signal.SIGINT]


def test_skips_idle_missing_and_post_processing(make_site, spawner, settings):
    site, streamer = capturing_site(make_site)
    site.registry.add("bob")

    # capture file not created yet
    assert site.monitor.check() == []
    assert streamer.filesize == 0

    write_capture(settings, streamer.filename, 50)
    streamer.filesize = 50
    streamer.stuck_count = 5
    site.mark_processing(streamer)

    assert site.monitor.check() == []
    assert streamer.state is StreamerState.POST_PROCESSING
    assert spawner.handles[0].signals == []
