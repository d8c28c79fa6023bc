"""
Sybilhunter Sequencer
=====================

Walks the input data once and fans every snapshot out to the selected
analysis engines, each running on its own thread.
Pure orchestration — no analysis here.

Engines are selected with switches; any number can run in one walk:

    -churn          per-flag churn rates            churn.csv
    -matrix         pairwise similarity             similarity.txt / sybils.dot
    -neighbours N   nearest neighbours (VP-tree)    neighbours.txt
    -contrib        netblock bandwidth share        contrib.csv
    -fingerprints   fingerprints per address        fingerprints.txt
    -uptime         uptime clustering image         uptime-visualisation.jpg
    -bwfraction F   fastest relays                  bwfraction.csv
    -print          dump records to stdout
    -printsome      dump listed records to stdout

Usage:
    sybilhunter -data consensuses-2015-07/ -churn -threshold 0.05
    sybilhunter -data descriptors/ -matrix -cumulative -visualise
    python -m sybilhunter.run -data consensuses/ -uptime -startdate 2015-07-01
"""

import argparse
import importlib
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from sybilhunter.core.base import BaseEngine
from sybilhunter.core.parallel.dispatcher import Dispatcher
from sybilhunter.errors import SybilhunterError
from sybilhunter.io.config import RunConfig, load_config_file, parse_date
from sybilhunter.io.lists import load_fingerprints
from sybilhunter.io.reader import walk_snapshots
from sybilhunter.io.writer import create_output_dir
from sybilhunter.validation import check_config


logger = logging.getLogger(__name__)

VERSION = '2015.01.a'

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


# ═══════════════════════════════════════════════════════════════
# ENGINE REGISTRY
# ═══════════════════════════════════════════════════════════════

# switch -> (module path relative to sybilhunter.stages, engine class)
ENGINES = {
    'churn':        ('churn',        'ChurnEngine'),
    'matrix':       ('similarity',   'SimilarityEngine'),
    'neighbours':   ('neighbours',   'NeighboursEngine'),
    'contrib':      ('contrib',      'ContribEngine'),
    'fingerprints': ('fingerprints', 'FingerprintsEngine'),
    'uptime':       ('uptime',       'UptimeEngine'),
    'bwfraction':   ('bwfraction',   'BwFractionEngine'),
    'print':        ('printing',     'PrintEngine'),
    'printsome':    ('printing',     'PrintSomeEngine'),
}

# Engines selected by a plain on/off switch
SWITCHES = ['churn', 'matrix', 'contrib', 'fingerprints', 'uptime', 'print', 'printsome']


def load_engine(switch: str):
    """Engine class registered for switch."""
    module_path, class_name = ENGINES[switch]
    module = importlib.import_module(f'sybilhunter.stages.{module_path}')
    return getattr(module, class_name)


def build_engines(config: RunConfig) -> List[BaseEngine]:
    """Instantiate the selected engines, in registry order."""
    engines = []
    for switch in ENGINES:
        if switch in config.engines:
            engines.append(load_engine(switch)(config))
    return engines


# ═══════════════════════════════════════════════════════════════
# RUN
# ═══════════════════════════════════════════════════════════════

def run(config: RunConfig, parser=None) -> Path:
    """
    Run every selected engine over the data in one walk.

    Args:
        config: Run configuration (validated here)
        parser: Document parser for the walker; defaults to the stem adapter

    Returns:
        Output directory holding the results
    """
    check_config(config)

    if config.fingerprints_file and config.fingerprint_filter is None:
        config.fingerprint_filter = load_fingerprints(config.fingerprints_file)

    config.output_dir = create_output_dir(config.output_dir)
    engines = build_engines(config)

    logger.info("Running %s over \"%s\" (%s mode).",
                ', '.join(e.engine_name for e in engines),
                config.data_path,
                'cumulative' if config.cumulative else 'streaming')

    snapshots = walk_snapshots(
        config.data_path,
        start_date=config.start_date,
        end_date=config.end_date,
        reverse=config.reverse,
        parser=parser,
    )
    Dispatcher(engines, cumulative=config.cumulative).run(snapshots)

    logger.info("Results written to \"%s\".", config.output_dir)
    return config.output_dir


# ═══════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════

def _option(parser, name: str, **kwargs) -> None:
    """Single-dash long option with a -- alias."""
    parser.add_argument(f'-{name}', f'--{name}', **kwargs)


def build_parser(defaults: Optional[Dict[str, Any]] = None) -> argparse.ArgumentParser:
    """Command line parser; defaults (from the config file) override built-ins."""
    parser = argparse.ArgumentParser(
        prog='sybilhunter',
        description="Sybilhunter: find Sybils in Tor network data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        epilog="""
Examples:
  sybilhunter -data consensuses-2015-07/ -churn -threshold 0.05
  sybilhunter -data descriptors/ -matrix -cumulative -visualise
  sybilhunter -data consensuses/ -neighbours 5 -referencerelay 9695DFC35FFEB861329B9F1AB04C46397020CE31
""",
    )

    _option(parser, 'data', help='File or directory to analyse (mandatory)')
    _option(parser, 'output', help='Output directory (default: fresh temp directory)')
    _option(parser, 'threshold', type=float, default=0.0,
            help='Analysis-specific threshold')
    _option(parser, 'windowsize', type=int, default=24,
            help='Moving average window for churn analysis')
    _option(parser, 'neighbours', type=int, default=None,
            help='Find the N nearest neighbours of -referencerelay')
    _option(parser, 'referencerelay', help='Reference fingerprint for -neighbours')
    _option(parser, 'startdate', help='First day to analyse, YYYY-MM-DD')
    _option(parser, 'enddate', help='Last day to analyse, YYYY-MM-DD')
    _option(parser, 'netblocks', help='Netblock file for -contrib')
    _option(parser, 'fingerprints-file', dest='fingerprints_file',
            help='Fingerprint list for -printsome and -uptime')
    _option(parser, 'image', help='Image file for -uptime')
    _option(parser, 'bwfraction', type=float,
            help='Find relays providing this fraction of bandwidth')
    _option(parser, 'interval', type=float, default=1.0,
            help='Expected hours between consecutive consensuses')

    for switch in SWITCHES:
        _option(parser, switch, action='store_true', help=f'Run {switch} analysis')

    _option(parser, 'cumulative', action='store_true',
            help='Merge all snapshots and analyse them once')
    _option(parser, 'visualise', action='store_true', help='Write a DOT graph for -matrix')
    _option(parser, 'nofamily', action='store_true',
            help='Ignore relay pairs declaring each other as family')
    _option(parser, 'reverse', action='store_true', help='Walk files in reverse order')
    _option(parser, 'verbose', action='store_true', help='Debug logging')
    _option(parser, 'version', action='version', version=f'sybilhunter v{VERSION}')

    if defaults:
        known = {action.dest for action in parser._actions}
        unknown = sorted(set(defaults) - known)
        if unknown:
            logger.warning("Ignoring unknown config file keys: %s", ', '.join(unknown))
        parser.set_defaults(**{k: v for k, v in defaults.items() if k in known})

    return parser


def build_config(args: argparse.Namespace) -> RunConfig:
    """Translate parsed arguments into a RunConfig."""
    engines = [switch for switch in SWITCHES if getattr(args, switch)]
    if args.neighbours is not None:
        engines.append('neighbours')
    if args.bwfraction is not None:
        engines.append('bwfraction')

    return RunConfig(
        data_path=args.data or '',
        output_dir=Path(args.output) if args.output else None,
        engines=engines,
        threshold=args.threshold,
        window_size=args.windowsize,
        neighbours=args.neighbours if args.neighbours is not None else 0,
        reference_relay=args.referencerelay,
        start_date=parse_date(args.startdate),
        end_date=parse_date(args.enddate),
        netblocks_file=args.netblocks,
        fingerprints_file=args.fingerprints_file,
        image_file=args.image,
        bw_fraction=args.bwfraction,
        interval=timedelta(hours=args.interval),
        cumulative=args.cumulative,
        visualise=args.visualise,
        no_family=args.nofamily,
        reverse=args.reverse,
    )


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point. Any SybilhunterError ends the process with status 1."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    try:
        parser = build_parser(load_config_file())
        args = parser.parse_args(argv)
        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)
        run(build_config(args))
    except SybilhunterError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == '__main__':
    main()
