import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from nowring.scheduling import ManualScheduler


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture(scope="session")
def qapp():
    QtCore = pytest.importorskip("PyQt5.QtCore")
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app
