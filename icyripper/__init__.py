"""Icyripper - record ICY/Shoutcast streams to one file per track."""

__version__ = "0.1.0"
