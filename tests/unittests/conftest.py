from unittest import mock

import pytest

from spinboot.metadata import MetadataStore
from tests.unittests.helpers import FakeCommands, FakeFetcher, make_context


@pytest.fixture(autouse=True)
def m_chownbyname():
    """Tests do not run as root and there is no spinnaker user to own files."""
    with mock.patch("spinboot.util.chownbyname", autospec=True) as m_chown:
        yield m_chown


@pytest.fixture
def ctx():
    return make_context()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def store(fetcher, ctx):
    return MetadataStore(fetcher, ctx)


@pytest.fixture
def gcloud(fetcher):
    """Route subp.subp through a FakeCommands bound to fetcher."""
    commands = FakeCommands(fetcher)
    with mock.patch("spinboot.subp.subp", side_effect=commands):
        yield commands
