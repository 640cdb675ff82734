import pytest

from zonegen.reporting import SilentReporter, set_reporter


@pytest.fixture(autouse=True)
def _silent_reporter():
    # Keep reporter output out of test logs; log records still reach caplog.
    set_reporter(SilentReporter())
    yield
