"""
Tests for the command line, start-up validation and a full run.
"""

import csv
from datetime import date, timedelta
from pathlib import Path

import pytest

from sybilhunter.errors import ConfigError
from sybilhunter.run import (
    ENGINES,
    VERSION,
    build_config,
    build_engines,
    build_parser,
    main,
    run,
)
from sybilhunter.validation import check_config, validate_config

from helpers import fpr, make_config, make_consensus


@pytest.fixture
def no_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv('SYBILHUNTER_CONFIG', str(tmp_path / 'absent.yaml'))


def _parse(*argv, defaults=None):
    return build_config(build_parser(defaults).parse_args(list(argv)))


# ─────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────

class TestParser:

    def test_version(self, capsys, no_config_file):
        with pytest.raises(SystemExit) as exc:
            main(['-version'])
        assert exc.value.code == 0
        assert capsys.readouterr().out.strip() == f'sybilhunter v{VERSION}'

    def test_switches_select_engines(self):
        config = _parse('-data', 'x', '-churn', '-uptime', '-neighbours', '3', '-bwfraction', '0.5')
        assert config.engines == ['churn', 'uptime', 'neighbours', 'bwfraction']
        assert config.neighbours == 3
        assert config.bw_fraction == 0.5

    def test_double_dash_alias(self):
        config = _parse('--data', 'x', '--matrix', '--nofamily', '--visualise')
        assert config.engines == ['matrix']
        assert config.no_family
        assert config.visualise

    def test_defaults(self):
        config = _parse('-data', 'x', '-churn')
        assert config.window_size == 24
        assert config.threshold == 0.0
        assert config.interval == timedelta(hours=1)
        assert config.output_dir is None
        assert config.start_date is None

    def test_neighbours_zero_selects_engine(self):
        config = _parse('-data', 'x', '-neighbours', '0', '-referencerelay', fpr(1))
        assert config.engines == ['neighbours']
        assert config.neighbours == 0

    def test_no_neighbours_switch(self):
        config = _parse('-data', 'x', '-churn')
        assert 'neighbours' not in config.engines

    def test_dates_and_output(self, tmp_path):
        config = _parse('-data', 'x', '-print', '-startdate', '2015-07-01',
                        '-enddate', '2015-07-31', '-output', str(tmp_path))
        assert config.start_date == date(2015, 7, 1)
        assert config.end_date == date(2015, 7, 31)
        assert config.output_dir == tmp_path

    def test_bad_date(self):
        with pytest.raises(ConfigError):
            _parse('-data', 'x', '-print', '-startdate', 'July')

    def test_config_file_defaults(self):
        config = _parse('-data', 'x', '-churn', defaults={'windowsize': 48, 'bogus': 1})
        assert config.window_size == 48

    def test_command_line_beats_config_file(self):
        config = _parse('-data', 'x', '-churn', '-windowsize', '6', defaults={'windowsize': 48})
        assert config.window_size == 6


class TestMain:

    def test_no_engine_exits_1(self, tmp_path, no_config_file):
        with pytest.raises(SystemExit) as exc:
            main(['-data', str(tmp_path)])
        assert exc.value.code == 1

    def test_missing_data_exits_1(self, tmp_path, no_config_file):
        with pytest.raises(SystemExit) as exc:
            main(['-data', str(tmp_path / 'absent'), '-churn'])
        assert exc.value.code == 1

    def test_zero_neighbours_exits_1(self, tmp_path, no_config_file):
        with pytest.raises(SystemExit) as exc:
            main(['-data', str(tmp_path), '-neighbours', '0', '-referencerelay', fpr(1)])
        assert exc.value.code == 1


# ─────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────

class TestValidation:

    def test_valid(self, tmp_path):
        assert validate_config(make_config(tmp_path, engines=['churn'])) == []

    def test_everything_reported_at_once(self, tmp_path):
        config = make_config(
            tmp_path,
            data_path=str(tmp_path / 'absent'),
            engines=['neighbours', 'contrib', 'printsome', 'bwfraction'],
            bw_fraction=1.5,
            start_date=date(2015, 8, 1),
            end_date=date(2015, 7, 1),
            interval=timedelta(0),
        )
        errors = validate_config(config)
        assert len(errors) == 8
        with pytest.raises(ConfigError) as exc:
            check_config(config)
        assert exc.value.errors == errors

    def test_no_engines(self, tmp_path):
        errors = validate_config(make_config(tmp_path))
        assert len(errors) == 1
        assert 'No analysis selected' in errors[0]

    def test_missing_netblock_file(self, tmp_path):
        config = make_config(tmp_path, engines=['contrib'],
                             netblocks_file=str(tmp_path / 'absent.txt'))
        assert validate_config(config) == [
            f"Netblock file \"{tmp_path / 'absent.txt'}\" does not exist."
        ]

    def test_bwfraction_bounds(self, tmp_path):
        assert validate_config(make_config(tmp_path, engines=['bwfraction'], bw_fraction=0.0)) == []
        assert validate_config(make_config(tmp_path, engines=['bwfraction'], bw_fraction=1.0)) == []
        assert validate_config(make_config(tmp_path, engines=['bwfraction'], bw_fraction=-0.1))


# ─────────────────────────────────────────────────────────────────────
# Full run
# ─────────────────────────────────────────────────────────────────────

def _hourly_parser(source, name=None):
    """Consensus for the hour in the file name; relay 1 leaves at 02:00."""
    hour = int(Path(str(name or source)).name.split('-')[3])
    ids = [1, 2, 3] if hour < 2 else [2, 3]
    return make_consensus(ids, hour=hour, address='198.51.100.7')


class TestRun:

    def test_registry_order(self, tmp_path):
        config = make_config(tmp_path, engines=['print', 'fingerprints', 'churn'])
        names = [engine.engine_name for engine in build_engines(config)]
        assert names == ['churn', 'fingerprints', 'print']
        assert set(ENGINES) >= set(config.engines)

    def test_end_to_end(self, tmp_path):
        data = tmp_path / 'data'
        data.mkdir()
        for hour in range(4):
            (data / f'2015-07-01-{hour:02d}-00-00-consensus').write_text('x')

        config = make_config(tmp_path, data_path=str(data), engines=['churn', 'fingerprints'])
        output = run(config, parser=_hourly_parser)

        assert output == tmp_path / 'out'
        with open(output / 'churn.csv', newline='') as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 3
        assert [float(row['gone_Running']) for row in rows] == pytest.approx([0.0, 1 / 3, 0.0])

        report = (output / 'fingerprints.txt').read_text()
        assert report.splitlines()[0] == '198.51.100.7 (3 unique fingerprints)'

    def test_fingerprint_file_loaded(self, tmp_path):
        data = tmp_path / 'data'
        data.mkdir()
        (data / '2015-07-01-00-00-00-consensus').write_text('x')
        fingerprints = tmp_path / 'fprs.txt'
        fingerprints.write_text(fpr(2) + '\n')

        config = make_config(tmp_path, data_path=str(data), engines=['uptime'],
                             fingerprints_file=str(fingerprints))
        run(config, parser=_hourly_parser)

        assert config.fingerprint_filter == frozenset({fpr(2)})

    def test_invalid_config_raises(self, tmp_path):
        with pytest.raises(ConfigError):
            run(make_config(tmp_path))
