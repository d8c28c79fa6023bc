"""
Sybilhunter — finds Sybils and anomalies in Tor network data.

Public API:
    from sybilhunter import run
    run(config)                      # RunConfig -> output directory

Layers:
    sybilhunter.io          Documents in (stem), results out (CSV, text, DOT, JPEG)
    sybilhunter.core        Algorithms + engine plumbing (no file I/O)
    sybilhunter.stages      Engines — one per analysis, fed snapshot by snapshot
    sybilhunter.validation  Start-up checks on the run configuration

Engines (sybilhunter.stages):
    churn, similarity, neighbours, contrib, fingerprints, uptime,
    bwfraction, printing
"""

from sybilhunter.run import VERSION as __version__
from sybilhunter.run import run

__all__ = ["run", "__version__"]
