import os

import pytest

FUNCTIONS_DIR = os.path.dirname(os.path.abspath(__file__))


@pytest.fixture(autouse=True)
def _run_from_functions_dir(monkeypatch):
    # main_test.py loads "main.py" via functions_framework relative to the cwd.
    monkeypatch.chdir(FUNCTIONS_DIR)
