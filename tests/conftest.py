"""Shared fixtures."""

import pytest
import requests

from app.services.pdb import StructureResolver
from app.util import KeyedLocks
from tests.fakes import REMOTE, FakeSession


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "data" / "structures"


@pytest.fixture
def resolver(session, cache_dir):
    return StructureResolver(REMOTE, cache_dir, session=session, locks=KeyedLocks())


@pytest.fixture
def transport_error():
    return requests.exceptions.ConnectionError("connection refused")
