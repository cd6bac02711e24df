# This file is part of spinboot. See LICENSE file for license information.

from unittest import mock

import pytest

from spinboot import subp
from spinboot.cmd import halyard, main
from spinboot.errors import (
    KubernetesConfigError,
    MetadataClearError,
    UnknownOptionError,
)
from tests.unittests.helpers import FakeFetcher, make_context

M_PATH = "spinboot.cmd.main."


@pytest.fixture
def m_setup():
    """Skip config, logging and metadata discovery."""
    with mock.patch(M_PATH + "setup") as m_setup:
        m_setup.return_value = ({"poll_interval": 0}, make_context(), None)
        yield m_setup


class TestGetParser:
    def test_default_status_prefix(self):
        assert "*" == main.get_parser().parse_args([]).status_prefix

    def test_status_prefix(self):
        args = main.get_parser().parse_args(["--status_prefix", "[boot]"])
        assert "[boot]" == args.status_prefix

    def test_halyard_prog(self):
        assert "spinboot-halyard" == halyard.get_parser().prog


class TestParseArgs:
    def test_unknown_option(self, capsys):
        assert 255 == main.main(["--bogus"])
        assert "ERROR: unknown option '--bogus'.\n" == capsys.readouterr().err

    def test_unknown_positional(self, capsys):
        assert 255 == main.main(["extra"])
        assert "unknown option 'extra'" in capsys.readouterr().err

    @pytest.mark.parametrize("flag", ["--status", "--status_pre"])
    def test_abbreviated_option_is_unknown(self, flag, capsys):
        with pytest.raises(UnknownOptionError, match=flag):
            main.parse_args(main.get_parser(), [flag, "X"])
        assert 255 == main.main([flag, "X"])
        assert (
            "ERROR: unknown option '%s'.\n" % flag
            == capsys.readouterr().err
        )

    def test_halyard_rejects_abbreviation(self):
        with pytest.raises(UnknownOptionError):
            main.parse_args(halyard.get_parser(), ["--status", "X"])


class TestMain:
    @mock.patch(M_PATH + "BootOrchestrator")
    def test_runs_boot(self, m_boot, m_setup):
        assert 0 == main.main(["--status_prefix", "+"])
        m_boot.return_value.run.assert_called_once_with()
        assert "+" == m_setup.call_args[0][0].status_prefix

    @mock.patch(M_PATH + "BootOrchestrator")
    def test_fatal_error_exit_code(self, m_boot, m_setup, capsys):
        m_boot.return_value.run.side_effect = MetadataClearError("kube_config")
        assert 255 == main.main([])
        assert (
            "Could not clear metadata from kube_config\n"
            == capsys.readouterr().err
        )

    @mock.patch(M_PATH + "BootOrchestrator")
    def test_command_exit_code_is_propagated(self, m_boot, m_setup):
        m_boot.return_value.run.side_effect = subp.ProcessExecutionError(
            cmd=["start", "spinnaker"], exit_code=7
        )
        assert 7 == main.main([])

    @mock.patch(M_PATH + "BootOrchestrator")
    def test_command_without_exit_code(self, m_boot, m_setup):
        m_boot.return_value.run.side_effect = subp.ProcessExecutionError(
            cmd=["missing"], reason="not found"
        )
        assert 1 == main.main([])

    def test_not_on_gce(self, capsys):
        fetcher = FakeFetcher(values={"instance/zone": None})
        cfg = {"metadata_url": "http://127.0.0.1/"}
        with mock.patch(
            M_PATH + "config.load_config", return_value=cfg
        ), mock.patch(M_PATH + "log.setup_logging"), mock.patch(
            M_PATH + "GoogleMetadataFetcher", return_value=fetcher
        ):
            assert 255 == main.main([])
        assert (
            "Not running on Google Cloud Platform.\n"
            == capsys.readouterr().err
        )


class TestSetup:
    def test_builds_store_for_instance(self):
        fetcher = FakeFetcher()
        cfg = {"metadata_url": "http://127.0.0.1/", "log_cfgs": []}
        args = main.get_parser().parse_args(["--status_prefix", "+"])
        with mock.patch(
            M_PATH + "config.load_config", return_value=cfg
        ), mock.patch(M_PATH + "log.setup_logging") as m_logging, mock.patch(
            M_PATH + "GoogleMetadataFetcher", return_value=fetcher
        ) as m_fetcher:
            got_cfg, ctx, store = main.setup(args)
        m_logging.assert_called_once_with(cfg)
        m_fetcher.assert_called_once_with("http://127.0.0.1/")
        assert cfg is got_cfg
        assert make_context(project_number="123", status_prefix="+") == ctx
        assert fetcher is store.fetcher
        assert ctx is store.ctx


class TestHalyardMain:
    @mock.patch("spinboot.cmd.halyard.HalyardBoot")
    def test_runs_halyard_boot(self, m_boot, m_setup):
        assert 0 == halyard.main([])
        m_boot.return_value.run.assert_called_once_with()

    @mock.patch("spinboot.cmd.halyard.HalyardBoot")
    def test_missing_cluster_exits_one(self, m_boot, m_setup, capsys):
        m_boot.return_value.run.side_effect = KubernetesConfigError()
        assert 1 == halyard.main([])
        assert "kubernetes was enabled" in capsys.readouterr().err
