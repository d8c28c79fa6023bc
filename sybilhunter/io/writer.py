"""
Writer — all result files go through here.

No other module should open output files directly. Every engine writes
into the one output directory held by its RunConfig; file names come from
OUTPUT_FILES so two engines never collide.
"""

import logging
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import polars as pl


logger = logging.getLogger(__name__)


# Result name -> file name inside the output directory
OUTPUT_FILES = {
    'churn':        'churn.csv',
    'churn_dump':   'churn_dump.txt',
    'contrib':      'contrib.csv',
    'bwfraction':   'bwfraction.csv',
    'similarity':   'similarity.txt',
    'sybils':       'sybils.dot',
    'neighbours':   'neighbours.txt',
    'fingerprints': 'fingerprints.txt',
    'uptime':       'uptime-visualisation.jpg',
}

TIME_LAYOUT = '%Y-%m-%d_%H:%M:%S'


def create_output_dir(output_dir: Optional[str] = None) -> Path:
    """
    Resolve the directory analysis results are written to.

    Uses output_dir when given (created if needed), otherwise a fresh
    sybilhunter_<timestamp>_* directory under the system temp dir.
    """
    if output_dir:
        path = Path(output_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    prefix = f"sybilhunter_{time.strftime(TIME_LAYOUT)}_"
    path = Path(tempfile.mkdtemp(prefix=prefix))
    logger.info("Created output directory \"%s\".", path)
    return path


def output_path(output_dir, name: str) -> Path:
    """Path of a named result inside output_dir."""
    return Path(output_dir) / OUTPUT_FILES.get(name, name)


def write_csv(
    rows: List[Dict],
    output_dir,
    name: str,
    columns: Optional[Sequence[str]] = None,
) -> Path:
    """
    Write rows (one dict per record) as CSV with a header row.

    Args:
        rows:       Records; None values become empty fields
        output_dir: Output directory
        name:       Result name (key of OUTPUT_FILES) or file name
        columns:    Column order; also used for the header of an empty file

    Returns:
        Path to written file
    """
    path = output_path(output_dir, name)
    path.parent.mkdir(parents=True, exist_ok=True)

    if rows:
        df = pl.DataFrame(rows, infer_schema_length=None)
        if columns:
            df = df.select(list(columns))
    else:
        df = pl.DataFrame({c: [] for c in (columns or [])})

    df.write_csv(str(path))
    logger.info("Wrote %d CSV rows to \"%s\".", df.height, path)
    return path


def write_text(content: str, output_dir, name: str) -> Path:
    """Write a text blurb to a named result file."""
    path = output_path(output_dir, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    logger.info("Wrote %d-byte string to \"%s\".", len(content), path)
    return path
