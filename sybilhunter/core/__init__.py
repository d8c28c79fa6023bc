"""
Sybilhunter Core
================

Algorithms and engine plumbing. No file I/O lives here.

Structure:
    base.py            - BaseEngine: consume() per snapshot, finish() at the end
    parallel/          - Channel + Dispatcher (one worker thread per engine)
    distance.py        - SimilarityVector, Levenshtein, feature strings
    vptree.py          - Vantage-point tree for k-nearest-neighbour search
    moving_average.py  - Fixed-window moving average
    online.py          - OnlineSequence (hourly presence, one mask per day)
    clustering.py      - Single-linkage ordering, identical-run detection
"""

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.distance import (
    SimilarityVector,
    feature_distance,
    feature_string,
    levenshtein,
    similarity,
)
from sybilhunter.core.vptree import VPTree
from sybilhunter.core.moving_average import MovingAverage
from sybilhunter.core.online import OnlineSequence
from sybilhunter.core.clustering import identical_runs, single_linkage_order

__all__ = [
    'BaseEngine',
    'SimilarityVector',
    'feature_distance',
    'feature_string',
    'levenshtein',
    'similarity',
    'VPTree',
    'MovingAverage',
    'OnlineSequence',
    'identical_runs',
    'single_linkage_order',
]
