import shlex
import sys

import pytest

from codeexec.core.models import LanguageKind
from codeexec.runner.process_runner import ProcessRunner
from codeexec.services.session_registry import SessionRegistry

PY = shlex.quote(sys.executable)


@pytest.fixture
def artifacts_dir(tmp_path):
    d = tmp_path / "artifacts"
    d.mkdir()
    return d


@pytest.fixture
def py_runner(artifacts_dir):
    # engine configured for python with the interpreter running the tests
    return ProcessRunner(LanguageKind.PYTHON, [PY], temp_dir=artifacts_dir)


@pytest.fixture
def registry(py_runner):
    return SessionRegistry(py_runner)
