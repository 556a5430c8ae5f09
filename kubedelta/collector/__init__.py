"""Collector package for kubedelta.

Runs the list/watch loops that keep each kind's ResourceCache current and
feed the classifier and dispatcher.

Submodules
----------
watcher -- ResourceWatcher: initial list, watch, resync timer, back-off.
"""

from kubedelta.collector.watcher import ResourceWatcher

__all__ = ["ResourceWatcher"]
