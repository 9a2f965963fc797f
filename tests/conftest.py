"""
Shared fixtures.
"""
import os
import shutil
import tempfile

import pytest

from taskgrove.database import TaskGroveDatabase
from taskgrove.dependencies.services import ServiceContainer


@pytest.fixture
def temp_db():
    """Temporary SQLite database."""
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, "test.db")
    db = TaskGroveDatabase(db_path)
    yield db
    shutil.rmtree(temp_dir)


@pytest.fixture
def services(temp_db):
    """Service container wired to the temporary database."""
    return ServiceContainer(temp_db)
