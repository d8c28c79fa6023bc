"""
Print engines — dump records to stdout for grepping.

    print       every record of every snapshot
    printsome   only records whose fingerprint is in the -fingerprints-file list
"""

import logging
import sys

from sybilhunter.core.base import BaseEngine


logger = logging.getLogger(__name__)


class PrintEngine(BaseEngine):

    engine_name = 'print'

    def __init__(self, config, stream=None):
        super().__init__(config)
        self.stream = stream or sys.stdout
        self.printed = 0

    def wanted(self, record) -> bool:
        return True

    def consume(self, snapshot) -> None:
        for record in snapshot.iterate(self.wanted):
            print(record, file=self.stream)
            self.printed += 1

    def finish(self) -> None:
        self.stream.flush()
        logger.info("Printed %d objects.", self.printed)


class PrintSomeEngine(PrintEngine):

    engine_name = 'printsome'

    def wanted(self, record) -> bool:
        return self.config.accepts(record)
