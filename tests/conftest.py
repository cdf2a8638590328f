import pytest

from video_agent import display


@pytest.fixture(autouse=True)
def _quiet_console():
    # Keep rich output out of the captured test logs.
    with display.quiet():
        yield
