import argparse
import logging
import signal
import sys
import threading
import time

from . import __version__
from .config import Config, validate_startup
from .errors import ConfigurationError
from .log import setup_logging
from .postprocess import PostProcessor, PostProcessQueue
from .site import Site
from .store import SiteStore


class Dvr:
    """Owns the sites, the shared post-process queue and the polling loop."""

    def __init__(self, config, sites=None):
        self.config = config
        self.settings = config.recording()
        self.exiting = threading.Event()
        self.queue = PostProcessQueue()
        self.post_processor = PostProcessor(
            self.queue, self.settings,
            ffmpeg_path=config.get('Advanced', 'ffmpeg_path'),
            ffmpeg_timeout=config.getint('Advanced', 'ffmpeg_timeout'),
        )
        self.interval = config.getint('Polling', 'interval_seconds')
        self.shutdown_grace = config.getint('Polling', 'shutdown_grace_seconds')
        self._stopped = False
        self.sites = sites if sites is not None else self._build_sites()

    def _build_sites(self):
        config_dir = self.config.calc_path(self.config.get('Paths', 'config_dir'))
        sites = []
        for name in self.config.site_names():
            try:
                site_config = self.config.site(name)
            except ConfigurationError as e:
                logging.error(str(e))
                continue
            if not site_config.enabled:
                logging.info(f"Site {name} is disabled")
                continue
            store = SiteStore(config_dir, site_config.list_name)
            try:
                sites.append(Site(site_config, self.settings, self.queue,
                                  exiting=self.exiting, store=store))
            except (OSError, ValueError) as e:
                logging.error(f"Could not load streamer list for {name}: {e}")
        return sites

    def pause(self, state):
        """Pause or resume every streamer on every site."""
        for site in self.sites:
            site.pause_all(state)

    def cycle(self):
        for site in self.sites:
            if self.exiting.is_set():
                break
            site.process_updates(add=True)
            site.process_updates(add=False)
            site.get_streamers()

    def run(self):
        logging.info(f"Polling {len(self.sites)} site(s) every {self.interval}s")
        while not self.exiting.is_set():
            self.cycle()
            self.exiting.wait(self.interval)

    def num_busy(self):
        return sum(site.num_captures_in_progress() for site in self.sites)

    def shutdown(self):
        """Stop polling, halt captures and wait for them and post-processing to finish."""
        if self._stopped:
            return
        self._stopped = True
        self.exiting.set()
        logging.info("Stop requested, halting all captures...")
        for site in self.sites:
            site.halt_all()

        deadline = time.monotonic() + self.shutdown_grace
        while self.num_busy() > 0 and time.monotonic() < deadline:
            time.sleep(1)

        # Anything still recording after the grace period is force-killed.
        # Post-process jobs are left alone so finished recordings are kept.
        for site in self.sites:
            for streamer in site.registry.list():
                if streamer.capture is not None and not streamer.in_post_process:
                    logging.warning(f"{streamer.name} capture did not stop, killing (PID {streamer.capture.pid})")
                    streamer.capture.kill_tree(logging.getLogger())

        # Each drain starts a fresh worker, so keep joining until the queue is empty
        if self.post_processor.is_busy():
            logging.info(f"Waiting for {len(self.queue)} post-process job(s) to finish...")
        while self.post_processor.is_busy():
            self.post_processor.join(1)
        logging.info("All captures stopped")


def main():
    """Parse arguments and start the DVR."""
    parser = argparse.ArgumentParser(
        description=f"streamdvr v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s                     Run with dvr.ini (Ctrl+C to stop)
  %(prog)s --config my.ini     Use a custom config file
  %(prog)s --paused            Start with every streamer paused
        """,
    )
    parser.add_argument('--config', default='dvr.ini',
                        help='Path to config file (default: dvr.ini)')
    parser.add_argument('--paused', action='store_true',
                        help='Start with every streamer paused')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    args = parser.parse_args()

    config = Config(args.config)
    setup_logging(config.calc_path(config.get('Paths', 'log_dir')), config.getboolean('Debug', 'log'))

    logging.info(f"streamdvr v{__version__} starting...")

    errors, warnings = validate_startup(config)
    for w in warnings:
        logging.warning(f"STARTUP WARNING: {w.splitlines()[0]}")
    if errors:
        for e in errors:
            logging.error(f"STARTUP ERROR: {e.splitlines()[0]}")
        sys.exit(1)

    dvr = Dvr(config)
    if args.paused:
        dvr.pause(True)

    shutdown_requested = threading.Event()

    def signal_handler(signum, frame):
        if not shutdown_requested.is_set():
            shutdown_requested.set()
            logging.info("Shutdown requested, stopping all recordings...")
            dvr.exiting.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        dvr.run()
    finally:
        dvr.shutdown()


if __name__ == "__main__":
    main()
