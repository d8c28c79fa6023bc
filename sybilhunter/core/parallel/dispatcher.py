"""
Fan-out Dispatcher
==================

One producer (the calling thread, walking the data), one worker thread per
engine. Each engine gets its own Channel; every snapshot is handed to every
channel in walk order.

Channel is an unbuffered rendezvous: send() returns only after the
consumer has taken the item, so at most one snapshot per engine is in
flight and the walk proceeds at the pace of the slowest engine.

Modes:
    streaming   each snapshot is broadcast as soon as it is parsed
    cumulative  all snapshots are merged, the union is sent exactly once

Failure handling:
    engine raises       its channel is abandoned, the next send() raises
                        ChannelClosedError, the run aborts with the engine's
                        exception; no other engine finishes, so a failed
                        run leaves no result files behind
    producer raises     every channel is cancelled, engines stop without
                        finishing, the producer's exception propagates
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Iterable, List, Tuple

from sybilhunter.core.base import BaseEngine
from sybilhunter.errors import ChannelClosedError, NoDataError
from sybilhunter.io.snapshot import Snapshot, merge_snapshots


logger = logging.getLogger(__name__)


class Channel:
    """Unbuffered, closable hand-off between one producer and one consumer."""

    def __init__(self, name: str = ''):
        self.name = name
        self._cond = threading.Condition()
        self._item: Any = None
        self._full = False
        self._closed = False
        self._abandoned = False
        self.cancelled = False

    def send(self, item: Any) -> None:
        """Hand item to the consumer; block until it has been received."""
        with self._cond:
            if self._closed:
                raise ChannelClosedError(f"send on closed channel {self.name}")
            while self._full and not self._abandoned:
                self._cond.wait()
            if self._abandoned:
                raise ChannelClosedError(f"consumer of channel {self.name} has stopped")

            self._item = item
            self._full = True
            self._cond.notify_all()

            while self._full and not self._abandoned:
                self._cond.wait()
            if self._full:
                self._item = None
                self._full = False
                raise ChannelClosedError(f"consumer of channel {self.name} has stopped")

    def receive(self) -> Tuple[Any, bool]:
        """
        Returns:
            (item, True), or (None, False) once the channel is closed and drained
        """
        with self._cond:
            while not self._full and not self._closed:
                self._cond.wait()
            if not self._full:
                return None, False
            item = self._item
            self._item = None
            self._full = False
            self._cond.notify_all()
            return item, True

    def __iter__(self):
        while True:
            item, ok = self.receive()
            if not ok:
                return
            yield item

    def close(self) -> None:
        """No more items. The consumer drains and stops."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def cancel(self) -> None:
        """Close because the producer failed; the consumer should not finish."""
        with self._cond:
            self.cancelled = True
            self._closed = True
            self._cond.notify_all()

    def abandon(self) -> None:
        """Consumer side: stop accepting items, wake a blocked producer."""
        with self._cond:
            self._abandoned = True
            self._cond.notify_all()


def gather(snapshots: Iterable[Snapshot]) -> Snapshot:
    """
    Merge all snapshots into one. Nothing to merge is fatal.

    The first snapshot fixes the kind; snapshots of another kind are
    logged and skipped.
    """
    kept: List[Snapshot] = []
    for snapshot in snapshots:
        if kept and type(snapshot) is not type(kept[0]):
            logger.warning("File format not supported in a %s accumulation, skipping %r.",
                           kept[0].kind, snapshot)
            continue
        kept.append(snapshot)

    if not kept:
        raise NoDataError("No snapshots to process.")

    merged = merge_snapshots(kept)
    logger.info("Merged %d snapshots into %d records.", len(kept), len(merged))
    return merged


class Dispatcher:
    """
    Args:
        engines:    Engines to feed, each runs on its own thread
        cumulative: Merge everything and send once, instead of streaming
    """

    def __init__(self, engines: List[BaseEngine], cumulative: bool = False):
        self.engines = list(engines)
        self.cumulative = cumulative

    def run(self, snapshots: Iterable[Snapshot]) -> int:
        """
        Feed snapshots to every engine and wait for all of them.

        No engine finishes (writes its results) unless every engine has
        drained its channel without error.

        Returns:
            Number of items sent per channel

        Raises:
            The first engine exception, or the producer's own exception
        """
        if not self.engines:
            return 0

        channels = [Channel(engine.engine_name) for engine in self.engines]
        self._failed = threading.Event()
        self._drained = threading.Barrier(len(self.engines))

        with ThreadPoolExecutor(
            max_workers=len(self.engines),
            thread_name_prefix='engine',
        ) as pool:
            futures = [
                pool.submit(self._consume, engine, channel)
                for engine, channel in zip(self.engines, channels)
            ]

            try:
                sent = self._feed(snapshots, channels)
            except ChannelClosedError:
                self._cancel(channels)
                errors = self._join(futures)
                if errors:
                    raise errors[0]
                raise
            except BaseException:
                self._cancel(channels)
                self._join(futures)
                raise

            if self._failed.is_set():
                self._cancel(channels)
            else:
                for channel in channels:
                    channel.close()
            errors = self._join(futures)

        if errors:
            raise errors[0]

        logger.info("Dispatched %d item(s) to %d engine(s).", sent, len(self.engines))
        return sent

    def _cancel(self, channels: List[Channel]) -> None:
        for channel in channels:
            channel.cancel()
        self._drained.abort()

    def _feed(self, snapshots: Iterable[Snapshot], channels: List[Channel]) -> int:
        if self.cumulative:
            merged = gather(snapshots)
            for channel in channels:
                channel.send(merged)
            return 1

        sent = 0
        for snapshot in snapshots:
            for channel in channels:
                channel.send(snapshot)
            sent += 1
        return sent

    def _ready(self) -> bool:
        """Wait until every engine has drained; False if any of them failed."""
        try:
            self._drained.wait()
        except threading.BrokenBarrierError:
            return False
        return not self._failed.is_set()

    def _consume(self, engine: BaseEngine, channel: Channel) -> None:
        threading.current_thread().name = f"engine-{engine.engine_name}"
        try:
            engine.run(channel, ready=self._ready)
        except BaseException:
            self._failed.set()
            self._drained.abort()
            channel.abandon()
            raise

    def _join(self, futures: List[Future]) -> List[BaseException]:
        """Barrier: wait for every worker, collect their exceptions."""
        errors = []
        for engine, future in zip(self.engines, futures):
            error = future.exception()
            if error is not None:
                logger.error("Engine %s failed: %s", engine.engine_name, error)
                errors.append(error)
        return errors
