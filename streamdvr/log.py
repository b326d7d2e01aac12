import logging
import os

from colorama import Fore, Style
from colorama import init as colorama_init


LOG_FORMAT = "%(asctime)s %(site)s[%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: "",
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}


class _SiteFilter(logging.Filter):
    """Give records logged outside a site adapter an empty site column."""

    def filter(self, record):
        if not hasattr(record, 'site'):
            record.site = ""
        return True


class ColorFormatter(logging.Formatter):
    """Console formatter that colors the whole line by level."""

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno, "")
        if not color:
            return line
        return f"{color}{line}{Style.RESET_ALL}"


def setup_logging(log_dir, debug=False):
    """Setup logging for the DVR process."""
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "streamdvr.log")
    level = logging.DEBUG if debug else logging.INFO

    colorama_init()

    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    file_handler.addFilter(_SiteFilter())

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(_SiteFilter())

    logging.root.setLevel(level)
    logging.root.addHandler(file_handler)
    logging.root.addHandler(console_handler)


def site_logger(site_name):
    """Logger for one site; every message is prefixed with the padded site name."""
    return logging.LoggerAdapter(
        logging.getLogger(f"streamdvr.{site_name.lower()}"),
        {'site': site_name.ljust(9) + " "},
    )
