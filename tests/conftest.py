"""
Shared fixtures for gee-bridge tests.

Earth Engine objects are replaced by MagicMocks whose ``__class__`` is set to
the real ee class, so ``isinstance`` checks behave without ``ee.Initialize()``.
"""

from unittest.mock import MagicMock

import ee
import pytest


def make_ee_mock(cls):
    """A MagicMock that passes isinstance checks for ``cls``."""
    obj = MagicMock()
    obj.__class__ = cls
    obj.name.return_value = cls.name()
    return obj


@pytest.fixture
def ee_mock():
    """Factory fixture: ``ee_mock(ee.Image)``."""
    return make_ee_mock


@pytest.fixture
def mock_task():
    """A started export task."""
    task = MagicMock()
    task.id = 'TASK123'
    task.config = {'description': 'test_export'}
    return task
