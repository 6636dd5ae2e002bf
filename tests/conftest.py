import pytest

from lecroyscpi.scope import LeCroyScope, MockLeCroyResource, MockResourceManager


@pytest.fixture
def res():
    return MockLeCroyResource()


@pytest.fixture
def scope(res):
    s = LeCroyScope("10.0.0.5", rm=MockResourceManager(res), timeout_ms=2000, poll_interval_s=0)
    s.connect()
    res.log.clear()
    yield s
    s.close()
