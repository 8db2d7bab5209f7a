"""Global pytest configuration.

The housekeeping modules (``config``, ``storage``, ``api``, ``housekeeper``)
and the ``services``/``utils`` namespace packages are imported by absolute
name, so the project root must be on ``sys.path`` wherever pytest starts.
"""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
