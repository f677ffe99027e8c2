import os as _os
import sys

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fleet.db import Store  # noqa: E402


@pytest.fixture
def store(tmp_path):
    s = Store(str(tmp_path / "fleet.db"))
    s.init_db()
    return s
