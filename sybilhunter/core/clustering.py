"""
Clustering — order uptime sequences so similar ones end up adjacent.

single_linkage_order():  1 - Pearson distance, single linkage, leaf order
identical_runs():        runs of bit-identical neighbours in that order

Usage:
    order = single_linkage_order(matrix)          # rows = participants
    runs = identical_runs([seqs[i] for i in order], block_length=5)
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import pdist


logger = logging.getLogger(__name__)

DEFAULT_BLOCK_LENGTH = 5


def correlation_distances(matrix: np.ndarray) -> np.ndarray:
    """
    Condensed 1 - Pearson distances between the rows of matrix.

    Rows without variance have no defined correlation; they are treated
    as uncorrelated with everything (distance 1.0).
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        distances = pdist(matrix, 'correlation')
    distances = np.where(np.isfinite(distances), distances, 1.0)
    # Rounding can push perfectly correlated rows slightly below zero
    return np.clip(distances, 0.0, 2.0)


def single_linkage_order(matrix: np.ndarray) -> List[int]:
    """
    Row order from single-linkage hierarchical clustering.

    Args:
        matrix: 2D array, one row per participant

    Returns:
        Permutation of range(n_rows), dendrogram leaf order
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    n = matrix.shape[0]
    if n < 2:
        return list(range(n))

    logger.info("Populating %dx%d distance matrix.", n, n)
    distances = correlation_distances(matrix)
    tree = linkage(distances, method='single')
    return [int(i) for i in leaves_list(tree)]


def identical_runs(sequences: Sequence, block_length: int = DEFAULT_BLOCK_LENGTH) -> List[Tuple[int, int]]:
    """
    Find runs of adjacent, identical sequences.

    Args:
        sequences:    Items in display order (compared with ==)
        block_length: Minimum number of identical columns to report

    Returns:
        List of (start, end) index pairs, end exclusive
    """
    runs = []
    start = 0
    for i in range(1, len(sequences) + 1):
        if i < len(sequences) and sequences[i] == sequences[i - 1]:
            continue
        if i - start >= block_length:
            runs.append((start, i))
        start = i
    return runs
