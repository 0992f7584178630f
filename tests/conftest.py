"""Shared fakes for starkbot-cli tests."""

import io

import pytest
from rich.console import Console


class FakeSpinner:
    """Records spinner transitions instead of drawing them."""

    def __init__(self):
        self.is_spinning = False
        self.text = None
        self.starts = 0
        self.stops = 0

    def start(self, text):
        self.is_spinning = True
        self.text = text
        self.starts += 1

    def update(self, text):
        self.text = text

    def stop(self):
        self.is_spinning = False
        self.stops += 1


@pytest.fixture
def spinner():
    return FakeSpinner()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), force_terminal=False, width=200, color_system=None)
