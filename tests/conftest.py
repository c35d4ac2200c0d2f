"""Pytest configuration for tests.

Sets up Python path so `src/` packages and `tests.fixtures` import without
installing the project.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
for path in (project_root, project_root / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
