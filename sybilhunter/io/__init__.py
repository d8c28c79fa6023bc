"""
sybilhunter.io — everything that touches files.

    snapshot   Snapshot data model (ConsensusSnapshot, DescriptorSnapshot)
    reader     stem adapter + file walker
    writer     CSV / text results in the output directory
    render     DOT graphs and uptime bitmaps
    lists      netblock and fingerprint list loaders
    config     RunConfig and the YAML config file
"""
