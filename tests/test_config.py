import configparser
import os

import pytest

from streamdvr.config import Config, SiteConfig, validate_startup
from streamdvr.errors import ConfigurationError


def test_default_config_is_written(tmp_path):
    path = tmp_path / "dvr.ini"

    config = Config(str(path))

    assert path.exists()
    assert config.getfloat('Recording', 'min_size_mb') == 5
    assert config.getint('Recording', 'max_size_mb') == 0
    assert config.site_names() == []


def test_missing_keys_are_merged_into_existing_file(tmp_path):
    path = tmp_path / "dvr.ini"
    path.write_text("[Recording]\nmax_size_mb = 4000\n\n[site:twitch]\nsite_url = https://twitch.tv/\n")

    config = Config(str(path))

    assert config.getint('Recording', 'max_size_mb') == 4000
    parser = configparser.ConfigParser(interpolation=None)
    parser.read(path)
    assert parser.get('Polling', 'interval_seconds') == '300'
    assert parser.get('Recording', 'date_format') == '%Y%m%d-%H%M%S'


def test_site_section_and_relative_paths(tmp_path):
    path = tmp_path / "dvr.ini"
    path.write_text(
        "[site:Twitch]\n"
        "site_url = https://twitch.tv/\n"
        "m3u8fetch = scripts/m3u8_streamlink.sh\n"
        "recorder = /usr/local/bin/record.sh\n"
        "batch_size = 0\n"
        "username = me\n"
    )
    config = Config(str(path))

    site = config.site("Twitch")

    assert site.list_name == "twitch"
    assert site.m3u8fetch == os.path.join(str(tmp_path), "scripts", "m3u8_streamlink.sh")
    assert site.recorder == "/usr/local/bin/record.sh"
    assert site.batch_size == 0
    assert site.credential_args() == ["--twitch-username=me", ""]
    site.validate()

    recording = config.recording()
    assert recording.capture_dir == os.path.join(str(tmp_path), "captures")


def test_unknown_site_raises(tmp_path):
    config = Config(str(tmp_path / "dvr.ini"))

    with pytest.raises(ConfigurationError):
        config.site("nope")


def test_validate_names_missing_settings():
    with pytest.raises(ConfigurationError, match="site_url, recorder"):
        SiteConfig(name="Kick", m3u8fetch="fetch.sh").validate()

    with pytest.raises(ConfigurationError, match="batch_size"):
        SiteConfig(name="Kick", site_url="https://kick.com/", m3u8fetch="f.sh",
                   recorder="r.sh", batch_size=-1).validate()


def test_validate_startup_creates_directories(tmp_path):
    config = Config(str(tmp_path / "dvr.ini"))
    config.config.set('Recording', 'auto_convert_type', 'ts')

    errors, warnings = validate_startup(config)

    assert errors == []
    assert any("No [site:<name>]" in w for w in warnings)
    assert (tmp_path / "captures").is_dir()
    assert (tmp_path / "complete").is_dir()
    assert (tmp_path / "config").is_dir()
