import os

from .capture import size_mb


class SizeMonitor:
    """Per-cycle check of capture file growth.

    A recording whose rounded size has not changed for two consecutive
    passes is considered stuck and halted.  With ``max_size_mb`` above zero,
    a recording that reaches the limit is halted as well.  At most one halt
    is issued per streamer per pass.
    """

    STUCK_LIMIT = 2

    def __init__(self, site, capture_dir, max_size_mb=0):
        self.site = site
        self.capture_dir = capture_dir
        self.max_size_mb = max_size_mb

    def check(self):
        """Run one pass.  Returns the uids halted during it."""
        log = self.site.log
        halted = []
        for streamer in self.site.registry.list():
            if streamer.capture is None or streamer.in_post_process:
                continue

            try:
                size = size_mb(os.path.getsize(os.path.join(self.capture_dir, streamer.filename)))
            except OSError as e:
                log.debug(f"{streamer.name} cannot stat {streamer.filename}: {e}")
                continue

            log.debug(f"{streamer.filename}, size={size}MB, maxSize={self.max_size_mb}MB")
            if size == streamer.filesize:
                streamer.stuck_count += 1
                log.info(f"{streamer.name} recording appears to be stuck (counter={streamer.stuck_count}), "
                         f"file size is not increasing: {size}MB")
            else:
                streamer.filesize = size

            if streamer.stuck_count >= self.STUCK_LIMIT:
                log.info(f"{streamer.name} terminating stuck recording")
                self.site.capture.halt_streamer(streamer)
                streamer.stuck_count = 0
                halted.append(streamer.uid)
            elif self.max_size_mb > 0 and size >= self.max_size_mb:
                log.info(f"{streamer.name} recording has exceeded file size limit "
                         f"(size={size} >= maxSize={self.max_size_mb})")
                self.site.capture.halt_streamer(streamer)
                halted.append(streamer.uid)
        return halted
