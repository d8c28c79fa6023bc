"""
Base engine class.

An engine is a stateful consumer of snapshots. The dispatcher runs each
engine on its own worker thread and feeds it through a Channel:

    engine.run(channel)
        -> consume(snapshot) for every snapshot, in walk order
        -> finish() once the channel is closed and no other engine failed

Engines own all of their state. Snapshots are shared between engines and
must never be mutated.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

from sybilhunter.io.config import RunConfig
from sybilhunter.io.snapshot import Snapshot


logger = logging.getLogger(__name__)


class BaseEngine(ABC):
    """
    Base class for all analysis engines.

    Subclasses must:
    1. Define engine_name
    2. Implement consume()
    3. Override finish() if they report at the end of the run
    """

    def __init__(self, config: RunConfig):
        self.config = config
        self.processed = 0

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Short name used in logs and thread names."""

    @abstractmethod
    def consume(self, snapshot: Snapshot) -> None:
        """Process one snapshot."""

    def finish(self) -> None:
        """Called once after the last snapshot."""

    def run(self, channel: Iterable[Snapshot], ready: Optional[Callable[[], bool]] = None) -> None:
        """
        Drain channel, then finish. Exceptions propagate to the dispatcher.

        Args:
            channel: Snapshots in walk order
            ready:   Called after draining; finish() only runs if it returns True
        """
        logger.debug("Engine %s waiting for snapshots.", self.engine_name)
        for snapshot in channel:
            self.consume(snapshot)
            self.processed += 1

        if getattr(channel, 'cancelled', False):
            logger.warning("Engine %s cancelled after %d snapshots.", self.engine_name, self.processed)
            return

        if ready is not None and not ready():
            logger.warning("Engine %s not finishing, the run was aborted.", self.engine_name)
            return

        self.finish()
        logger.info("Engine %s done after %d snapshots.", self.engine_name, self.processed)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(processed={self.processed})"
