"""Tests for the import CLI."""

from unittest.mock import patch

import pytest

from macrocal.pipelines import run_import
from macrocal.shared.errors import ConfigurationError, StoreError


class TestParseArgs:
    def test_defaults(self):
        args = run_import.parse_args(["fred"])

        assert args.source == "fred"
        assert args.ids is None
        assert args.start_year == 2014
        assert args.end_year is None
        assert not args.health_check
        assert not args.export_only

    def test_ids_and_years(self):
        args = run_import.parse_args(["bls", "--ids", "CUUR0000SA0", "LNS14000000", "--start-year", "2020"])

        assert args.ids == ["CUUR0000SA0", "LNS14000000"]
        assert args.start_year == 2020

    def test_unknown_source(self):
        with pytest.raises(SystemExit):
            run_import.parse_args(["nowhere"])


class TestMain:
    @pytest.fixture(autouse=True)
    def _settings(self, settings):
        with patch.object(run_import.Config, "settings", return_value=settings):
            yield

    def test_success(self):
        with patch.object(run_import, "run_source", return_value=True) as run_source:
            assert run_import.main(["fred"]) == 0
        assert run_source.call_args.args[0] == "fred"

    def test_all_sources(self):
        with patch.object(run_import, "run_source", return_value=True) as run_source:
            run_import.main(["all"])
        assert [c.args[0] for c in run_source.call_args_list] == ["bls", "ecb", "fred", "imf", "world-bank"]

    def test_configuration_error_skips_source(self):
        outcomes = [ConfigurationError("no key"), True, True, True, True]
        with patch.object(run_import, "run_source", side_effect=outcomes) as run_source:
            assert run_import.main(["all"]) == 1
        assert run_source.call_count == 5

    def test_store_error_fails(self):
        with patch.object(run_import, "run_source", side_effect=StoreError("db down")):
            assert run_import.main(["fred"]) == 1

    def test_invalid_configuration(self):
        with patch.object(run_import.Config, "settings", side_effect=ValueError("bad")):
            assert run_import.main(["fred"]) == 1

    def test_export_only_writes_snapshot(self, settings):
        args = run_import.parse_args(["fred", "--ids", "UNRATE", "--export-only"])
        with patch.object(run_import, "build_collector") as build:
            collector = build.return_value
            collector.MULTI_COUNTRY = False
            collector.collect.return_value = ["point"]

            assert run_import.run_source("fred", args, settings, run_import.setup_logger("test_cli"))

        collector.export_csv.assert_called_once_with(collector.to_frame.return_value, "observations")
