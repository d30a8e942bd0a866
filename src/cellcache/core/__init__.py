"""Ambient building blocks: errors, logging, settings and the watch substrate."""
