"""Watch live stream rooms and record them with FFmpeg or a built-in FLV parser."""

__version__ = "0.1.0"