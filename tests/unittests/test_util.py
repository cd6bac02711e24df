# This file is part of spinboot. See LICENSE file for license information.

import os
import stat
from unittest import mock

import pytest

from spinboot import util

# the real implementation, before the autouse fixture patches it
chownbyname = util.chownbyname

M_PATH = "spinboot.util."


class TestGetCfgOption:
    @pytest.mark.parametrize(
        "value,expected",
        [(True, True), ("yes", True), ("On", True), ("0", False), (None, False)],
    )
    def test_bool(self, value, expected):
        assert expected == util.get_cfg_option_bool({"k": value}, "k")

    def test_bool_default(self):
        assert util.get_cfg_option_bool({}, "k", True)

    def test_str(self):
        assert "1" == util.get_cfg_option_str({"k": 1}, "k")
        assert "d" == util.get_cfg_option_str({}, "k", "d")

    def test_list(self):
        assert ["a"] == util.get_cfg_option_list({"k": "a"}, "k")
        assert ["a", "b"] == util.get_cfg_option_list({"k": ["a", "b"]}, "k")
        assert [] == util.get_cfg_option_list({"k": None}, "k")
        assert None is util.get_cfg_option_list({}, "k")


class TestMergeManyDict:
    def test_first_source_wins(self):
        assert {"a": 1, "d": {"a": 1, "f": 2}} == util.mergemanydict(
            [{"a": 1, "d": {"a": 1}}, {"a": 10, "d": {"f": 2}}]
        )

    def test_sources_are_not_modified(self):
        builtin = {"d": {"f": 2}}
        merged = util.mergemanydict([{}, builtin])
        merged["d"]["f"] = 3
        assert {"d": {"f": 2}} == builtin


class TestLoadYaml:
    def test_dict(self):
        assert {"a": 1} == util.load_yaml("a: 1\n")

    def test_invalid_returns_default(self):
        assert "d" == util.load_yaml("a: [1\n", default="d")

    def test_disallowed_root_type(self):
        assert None is util.load_yaml("- 1\n")

    def test_read_conf_missing(self, tmp_path):
        assert {} == util.read_conf(str(tmp_path / "nope"))


class TestWriteFile:
    def test_creates_directories_and_sets_mode(self, tmp_path):
        path = tmp_path / "a" / "b" / "file"
        util.write_file(str(path), "content", mode=0o400)
        assert "content" == path.read_text()
        assert 0o400 == stat.S_IMODE(os.stat(path).st_mode)

    def test_file_is_never_world_readable_while_written(self, tmp_path):
        path = tmp_path / "file"
        modes = []
        real_chmod = os.chmod

        def record_mode(fname, mode):
            modes.append(stat.S_IMODE(os.stat(fname).st_mode))
            real_chmod(fname, mode)

        with mock.patch(M_PATH + "os.chmod", side_effect=record_mode):
            util.write_file(str(path), "secret", mode=0o400)
        assert modes[-1] & 0o077 == 0

    def test_text_mode(self, tmp_path):
        path = tmp_path / "file"
        util.write_file(str(path), b"bytes\n", omode="w")
        assert "bytes\n" == path.read_text()


class TestFiles:
    def test_is_nonempty_file(self, tmp_path):
        path = tmp_path / "f"
        assert not util.is_nonempty_file(str(path))
        path.write_text("")
        assert not util.is_nonempty_file(str(path))
        path.write_text("x")
        assert util.is_nonempty_file(str(path))

    def test_del_file_missing_is_fine(self, tmp_path):
        util.del_file(str(tmp_path / "nope"))

    def test_umask_restored(self):
        old = os.umask(0o022)
        try:
            with util.umask(0o077):
                assert 0o077 == os.umask(0o077)
            assert 0o022 == os.umask(0o022)
        finally:
            os.umask(old)


class TestChown:
    @mock.patch(M_PATH + "os.chown")
    def test_chownbyname_resolves_names(self, m_chown):
        with mock.patch(M_PATH + "pwd.getpwnam") as m_pw, mock.patch(
            M_PATH + "grp.getgrnam"
        ) as m_gr:
            m_pw.return_value.pw_uid = 1001
            m_gr.return_value.gr_gid = 1002
            chownbyname("/f", "spinnaker", "spinnaker")
        m_chown.assert_called_once_with("/f", 1001, 1002)

    @mock.patch(M_PATH + "os.chown")
    def test_unknown_user(self, m_chown):
        with mock.patch(M_PATH + "pwd.getpwnam", side_effect=KeyError("x")):
            with pytest.raises(OSError, match="Unknown user or group"):
                chownbyname("/f", "nobody-here")
        assert 0 == m_chown.call_count

    def test_recursive(self, tmp_path, m_chownbyname):
        (tmp_path / "d" / "e").mkdir(parents=True)
        (tmp_path / "d" / "e" / "f").write_text("")
        util.chownbyname_recursive(str(tmp_path / "d"), "u", "g")
        assert {
            str(tmp_path / "d"),
            str(tmp_path / "d" / "e"),
            str(tmp_path / "d" / "e" / "f"),
        } == {call[0][0] for call in m_chownbyname.call_args_list}


class TestPollUntil:
    @mock.patch(M_PATH + "time.sleep")
    def test_polls_until_true(self, m_sleep):
        predicate = mock.Mock(side_effect=[False, False, True])
        assert 3 == util.poll_until(predicate, naplen=5)
        assert [mock.call(5), mock.call(5)] == m_sleep.call_args_list

    @mock.patch(M_PATH + "time.sleep")
    def test_no_wait_when_already_true(self, m_sleep):
        assert 1 == util.poll_until(lambda: True)
        assert 0 == m_sleep.call_count


class TestIsPortOpen:
    @mock.patch(M_PATH + "socket.create_connection")
    def test_open(self, m_conn):
        assert util.is_port_open("localhost", 9160)
        assert ("localhost", 9160) == m_conn.call_args[0][0]

    @mock.patch(
        M_PATH + "socket.create_connection", side_effect=ConnectionRefusedError
    )
    def test_closed(self, m_conn):
        assert not util.is_port_open("localhost", 9160)


class TestError:
    def test_returns_rc(self, capsys):
        assert 3 == util.error("boom", rc=3)
        assert "Error:\nboom\n" == capsys.readouterr().err

    def test_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            util.error("boom", rc=4, sys_exit=True)
        assert 4 == exc_info.value.code
