"""
Fan-out dispatch of snapshots to engine worker threads.
"""

from .dispatcher import Channel, Dispatcher, gather

__all__ = [
    'Channel',
    'Dispatcher',
    'gather',
]
