"""
streamdvr
=========

Tracks streamers across one or more sites, polls them for live status and
supervises the external recorder processes that capture their streams.

Records live streams using:
  • a per-site ``m3u8fetch`` script to decide whether a streamer is live
  • a per-site ``recorder`` script that writes a raw .ts capture
  • ffmpeg for remuxing finished captures to .mp4/.mkv
"""

__version__ = "1.0"
