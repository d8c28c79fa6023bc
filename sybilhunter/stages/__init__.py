"""
Sybilhunter Stages — one engine per analysis.

Engines:
    churn:        Per-flag churn rate between consecutive consensuses
    similarity:   Pairwise descriptor similarity, Sybil pairs (text or DOT)
    neighbours:   k nearest neighbours of a reference relay (VP-tree)
    contrib:      Bandwidth share of given netblocks
    fingerprints: Addresses cycling through identity fingerprints
    uptime:       Clustered uptime image with highlighted Sybil columns
    bwfraction:   Fastest relays carrying a given bandwidth fraction
    printing:     Record dumps to stdout (print, printsome)

Each module exposes its engine class plus the pure helper it is built on,
so the algorithms can be used without the dispatcher.
"""
