import configparser
import logging
import os
import shutil
from dataclasses import dataclass

from .errors import ConfigurationError


# ============ CONFIGURATION MANAGEMENT ============
class Config:
    """Manages application configuration from dvr.ini"""

    DEFAULT_CONFIG = {
        'Paths': {
            'capture_dir': 'captures',
            'complete_dir': 'complete',
            'config_dir': 'config',
            'log_dir': '.',
        },
        'Recording': {
            'min_size_mb': '5',
            'max_size_mb': '0',              # 0 = no size limit
            'date_format': '%Y%m%d-%H%M%S',
            'include_site_in_file': 'false',
            'site_subdir': 'false',
            'streamer_subdir': 'true',
            'include_site_in_dir': 'false',
            'auto_convert_type': 'mp4',      # ts, mp4 or mkv
            'keep_ts_file': 'false',
        },
        'Polling': {
            'interval_seconds': '300',
            'probe_timeout': '30',
            'shutdown_grace_seconds': '30',
        },
        'Proxy': {
            'enable': 'false',
            'server': '',
        },
        'Debug': {
            'log': 'false',
            'recorder': 'false',
        },
        'Advanced': {
            'ffmpeg_path': 'ffmpeg',
            'ffmpeg_timeout': '600',
        },
    }

    SITE_PREFIX = 'site:'

    def __init__(self, config_file='dvr.ini'):
        self.config_file = config_file
        self.config = configparser.ConfigParser(interpolation=None)
        self._load_or_create()

    def _load_or_create(self):
        if os.path.exists(self.config_file):
            self.config.read(self.config_file)
            updated = False
            for section, options in self.DEFAULT_CONFIG.items():
                if not self.config.has_section(section):
                    self.config.add_section(section)
                    updated = True
                for key, value in options.items():
                    if not self.config.has_option(section, key):
                        self.config.set(section, key, value)
                        updated = True
            if updated:
                with open(self.config_file, 'w') as f:
                    self.config.write(f)
        else:
            for section, options in self.DEFAULT_CONFIG.items():
                self.config.add_section(section)
                for key, value in options.items():
                    self.config.set(section, key, value)
            with open(self.config_file, 'w') as f:
                self.config.write(f)
            logging.info(f"Created default config file: {self.config_file}")

    # Convenience accessors
    def get(self, section, key, fallback=None):
        return self.config.get(section, key, fallback=fallback)

    def getfloat(self, section, key, fallback=None):
        return self.config.getfloat(section, key, fallback=fallback)

    def getint(self, section, key, fallback=None):
        return self.config.getint(section, key, fallback=fallback)

    def getboolean(self, section, key, fallback=None):
        return self.config.getboolean(section, key, fallback=fallback)

    @property
    def base_dir(self):
        return os.path.dirname(os.path.abspath(self.config_file))

    def calc_path(self, path):
        """Resolve a configured path relative to the config file's directory."""
        if not path:
            return path
        path = os.path.expanduser(path)
        if os.path.isabs(path):
            return path
        return os.path.join(self.base_dir, path)

    def site_names(self):
        return [s[len(self.SITE_PREFIX):] for s in self.config.sections()
                if s.startswith(self.SITE_PREFIX)]

    def site(self, name):
        return SiteConfig.from_section(name, self)

    def recording(self):
        return RecordingSettings.from_config(self)


@dataclass
class RecordingSettings:
    """Global recording options shared by every site."""

    capture_dir: str
    complete_dir: str
    min_size_mb: float = 5.0
    max_size_mb: int = 0
    date_format: str = '%Y%m%d-%H%M%S'
    include_site_in_file: bool = False
    site_subdir: bool = False
    streamer_subdir: bool = True
    include_site_in_dir: bool = False
    auto_convert_type: str = 'mp4'
    keep_ts_file: bool = False
    proxy_enable: bool = False
    proxy_server: str = ''
    debug_recorder: bool = False

    @classmethod
    def from_config(cls, config):
        return cls(
            capture_dir=config.calc_path(config.get('Paths', 'capture_dir')),
            complete_dir=config.calc_path(config.get('Paths', 'complete_dir')),
            min_size_mb=config.getfloat('Recording', 'min_size_mb'),
            max_size_mb=config.getint('Recording', 'max_size_mb'),
            date_format=config.get('Recording', 'date_format'),
            include_site_in_file=config.getboolean('Recording', 'include_site_in_file'),
            site_subdir=config.getboolean('Recording', 'site_subdir'),
            streamer_subdir=config.getboolean('Recording', 'streamer_subdir'),
            include_site_in_dir=config.getboolean('Recording', 'include_site_in_dir'),
            auto_convert_type=config.get('Recording', 'auto_convert_type').lower(),
            keep_ts_file=config.getboolean('Recording', 'keep_ts_file'),
            proxy_enable=config.getboolean('Proxy', 'enable'),
            proxy_server=config.get('Proxy', 'server'),
            debug_recorder=config.getboolean('Debug', 'recorder'),
        )


@dataclass
class SiteConfig:
    """Settings from one ``[site:<name>]`` section."""

    name: str
    site_url: str = ''
    url_suffix: str = ''
    m3u8fetch: str = ''
    recorder: str = ''
    record_from_site_url: bool = False
    batch_size: int = 5
    username: str = ''
    password: str = ''
    enabled: bool = True
    probe_timeout: int = 30

    @classmethod
    def from_section(cls, name, config):
        section = Config.SITE_PREFIX + name
        if not config.config.has_section(section):
            raise ConfigurationError(f"No [{section}] section in {config.config_file}")
        return cls(
            name=name,
            site_url=config.get(section, 'site_url', fallback=''),
            url_suffix=config.get(section, 'url_suffix', fallback=''),
            m3u8fetch=config.calc_path(config.get(section, 'm3u8fetch', fallback='')),
            recorder=config.calc_path(config.get(section, 'recorder', fallback='')),
            record_from_site_url=config.getboolean(section, 'record_from_site_url', fallback=False),
            batch_size=config.getint(section, 'batch_size', fallback=5),
            username=config.get(section, 'username', fallback=''),
            password=config.get(section, 'password', fallback=''),
            enabled=config.getboolean(section, 'enabled', fallback=True),
            probe_timeout=config.getint('Polling', 'probe_timeout', fallback=30),
        )

    @property
    def list_name(self):
        return self.name.lower()

    def validate(self):
        """Raise ConfigurationError naming every missing required setting."""
        missing = [key for key in ('site_url', 'm3u8fetch', 'recorder') if not getattr(self, key)]
        if missing:
            raise ConfigurationError(f"[{Config.SITE_PREFIX}{self.name}] is missing {', '.join(missing)}")
        if self.batch_size < 0:
            raise ConfigurationError(f"[{Config.SITE_PREFIX}{self.name}] batch_size must be >= 0")

    def credential_args(self):
        """Credential flags handed to both the probe and the recorder."""
        return [
            f"--{self.list_name}-username={self.username}" if self.username else "",
            f"--{self.list_name}-password={self.password}" if self.password else "",
        ]


def validate_startup(config):
    """Validate dependencies and config at startup.

    Returns (errors: list[str], warnings: list[str]).
    Errors are fatal, the DVR cannot work.  Warnings are non-fatal
    but the user should be aware.
    """
    errors = []
    warnings = []

    recording = config.recording()

    for path in (recording.capture_dir, recording.complete_dir, config.calc_path(config.get('Paths', 'config_dir'))):
        try:
            os.makedirs(path, exist_ok=True)
        except PermissionError:
            errors.append(
                f"Permission denied creating '{path}'.\n"
                f"  Check that you have write access to this location."
            )
        except OSError as e:
            errors.append(f"Cannot create directory '{path}': {e}")

    if recording.auto_convert_type not in ('ts', 'mp4', 'mkv'):
        warnings.append(f"auto_convert_type '{recording.auto_convert_type}' is not ts, mp4 or mkv, captures will not be converted")
    elif recording.auto_convert_type != 'ts' and shutil.which(config.get('Advanced', 'ffmpeg_path')) is None:
        warnings.append(
            "ffmpeg not found in PATH.  Captures will be left as .ts files.\n"
            "  Install: https://ffmpeg.org/download.html"
        )

    if recording.max_size_mb < 0:
        warnings.append("max_size_mb is negative, size limit disabled")

    if not config.site_names():
        warnings.append("No [site:<name>] sections configured, nothing will be recorded.")

    return errors, warnings
