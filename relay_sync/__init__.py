"""Relay Watcher: one-shot relay of new files between folders.

Watches a source folder (recursively) for new files and copies each
one, once, into a flat target folder.  A JSON ledger of transferred
file names survives restarts so nothing is copied twice.
"""

__version__ = "1.0.0"
__app_name__ = "Relay Watcher"
