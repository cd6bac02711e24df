"""Global conftest.py

This conftest is used for unit tests in ``spinboot/`` and
``tests/unittests/``.

Any imports that are performed at the top-level here must be installed
wherever any of these tests run: that is to say, they must be listed in
``test-requirements.txt``.
"""
from unittest import mock

import pytest

from spinboot import helpers, settings, subp, util


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "allow_subp_for(*cmds): allow subp.subp for these commands"
    )
    config.addinivalue_line(
        "markers", "allow_all_subp: allow any subp.subp usage"
    )


class _FixtureUtils:
    """A namespace for fixture helper functions, used by fixture_utils.

    These helper functions are all defined as staticmethods so they are
    effectively functions; they are defined in a class only to give us a
    namespace so calling them can look like
    ``fixture_utils.fixture_util_function()`` in test code.
    """

    @staticmethod
    def closest_marker_args_or(request, marker_name: str, default):
        """Get the args for closest ``marker_name`` or return ``default``"""
        marker = request.node.get_closest_marker(marker_name)
        if marker is not None:
            return marker.args
        return default


class UnexpectedSubpError(BaseException):
    """Error thrown when subp.subp is unexpectedly used.

    We inherit from BaseException so it doesn't get silently swallowed
    by other error handlers.
    """


@pytest.fixture(autouse=True)
def disable_subp_usage(request, fixture_utils):
    """
    Across all (pytest) tests, ensure that subp.subp is not invoked.

    Provisioning shells out to gcloud, apt-get and the service manager, none
    of which may run from a unit test. Any test-local patching of
    ``spinboot.subp.subp`` overrides this one.

    To allow a particular test to use ``subp.subp`` you can mark it::

        @pytest.mark.allow_all_subp
        def test_true(self):
            subp.subp(["true"])

    To instead allow ``subp.subp`` usage for specific commands::

        @pytest.mark.allow_subp_for("sh", "cat")
        def test_sh(self):
            subp.subp(["sh", "-c", "exit 0"])
    """
    allow_subp_for = fixture_utils.closest_marker_args_or(
        request, "allow_subp_for", None
    )
    # Because the mark doesn't take arguments, `allow_all_subp` will be set to
    # [] if the marker is present, so explicit None checks are required
    allow_all_subp = fixture_utils.closest_marker_args_or(
        request, "allow_all_subp", None
    )

    if allow_all_subp is not None and allow_subp_for is None:
        yield
        return

    if allow_subp_for is None:

        def side_effect(args, *other_args, **kwargs):
            raise UnexpectedSubpError("Unexpectedly used subp.subp")

    else:
        real_subp = subp.subp

        def side_effect(args, *other_args, **kwargs):
            cmd = args[0]
            if cmd not in allow_subp_for:
                raise UnexpectedSubpError(
                    "Unexpectedly used subp.subp to call {} (allowed:"
                    " {})".format(cmd, ",".join(allow_subp_for))
                )
            return real_subp(args, *other_args, **kwargs)

    with mock.patch("spinboot.subp.subp", autospec=True) as m_subp:
        m_subp.side_effect = side_effect
        yield


@pytest.fixture(scope="session")
def fixture_utils():
    """Return a namespace containing fixture utility functions.

    See :py:class:`_FixtureUtils` for further details."""
    return _FixtureUtils


@pytest.fixture
def mocked_responses():
    import responses as _responses

    with _responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def cfg(tmp_path):
    """Return a config with every location under tmp_path."""
    return util.mergemanydict(
        [
            {
                "install_dir": str(tmp_path / "opt" / "spinnaker"),
                "home_dir": str(tmp_path / "home" / "spinnaker"),
                "monitoring_dir": str(tmp_path / "opt" / "monitoring"),
                "defaults_file": str(tmp_path / "etc" / "default" / "spin"),
                "poll_interval": 0,
            },
            settings.CFG_BUILTIN,
        ]
    )


@pytest.fixture
def paths(cfg):
    """Return a helpers.Paths object rooted in a tmp_path."""
    return helpers.Paths(cfg)
