"""
Render — graph and image output.

    dot_graph()           Sybil pairs -> Graphviz DOT source
    uptime_pixels()       ordered OnlineSequences -> RGB bitmap (numpy)
    write_uptime_image()  bitmap -> JPEG (Pillow)

Compile DOT output with:  dot -Tsvg -o sybils.svg sybils.dot
"""

import logging
from pathlib import Path
from typing import Collection, Iterable, Sequence

import numpy as np
from PIL import Image


logger = logging.getLogger(__name__)

ATLAS_URL = 'https://atlas.torproject.org/#details/{}'

OFFLINE = (255, 255, 255)
ONLINE = (0, 0, 0)
HIGHLIGHT = (255, 0, 0)

JPEG_QUALITY = 100


# ═══════════════════════════════════════════════════════════════
# DOT
# ═══════════════════════════════════════════════════════════════

def _dot_escape(text: str) -> str:
    return text.replace('\\', '\\\\').replace('"', '\\"')


def _node_id(record) -> str:
    return f"{_dot_escape(record.nickname)}\\n{record.fingerprint[:8]}"


def dot_graph(pairs: Iterable) -> str:
    """
    Undirected graph, one edge per Sybil pair.

    Args:
        pairs: SimilarityVectors; edge labels come from describe()

    Returns:
        DOT source text
    """
    lines = [
        'graph sybils {',
        'node [fillcolor="#dddddd", style="filled,solid"]',
        'edge [fontsize=8]',
    ]

    for pair in pairs:
        first, second = pair.first, pair.second
        label = _dot_escape(pair.describe()).replace('\n', '\\l')
        lines.append(f'\t"{_node_id(first)}" -- "{_node_id(second)}" [label=" {label}"];')
        for record in (first, second):
            url = ATLAS_URL.format(record.fingerprint)
            lines.append(f'"{_node_id(record)}" [URL="{url}"]')

    lines.append('}')
    return '\n'.join(lines) + '\n'


# ═══════════════════════════════════════════════════════════════
# UPTIME IMAGE
# ═══════════════════════════════════════════════════════════════

def uptime_pixels(
    sequences: Sequence,
    hours: int,
    highlighted: Collection[int] = (),
) -> np.ndarray:
    """
    Build the uptime bitmap.

    Args:
        sequences:   OnlineSequences in column order
        hours:       Image height, one row per processed snapshot
        highlighted: Column indices whose online cells are drawn red

    Returns:
        uint8 array of shape (hours, len(sequences), 3)
    """
    pixels = np.empty((hours, len(sequences), 3), dtype=np.uint8)
    pixels[:, :] = OFFLINE

    for column, sequence in enumerate(sequences):
        bits = sequence.to_array()[:hours]
        online = np.zeros(hours, dtype=bool)
        online[:len(bits)] = bits > 0
        pixels[online, column] = HIGHLIGHT if column in highlighted else ONLINE

    return pixels


def write_uptime_image(pixels: np.ndarray, path) -> Path:
    """Encode bitmap as JPEG at maximum quality."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    height, width = pixels.shape[:2]
    logger.info("Generating %dx%d pixel uptime visualisation.", width, height)

    image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    image.save(path, format='JPEG', quality=JPEG_QUALITY)

    logger.info("Wrote image file to \"%s\".", path)
    return path
