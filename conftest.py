"""Pytest configuration.

Ensures that the repository root is importable so that the ``tabpulse``
package can be resolved when tests are executed without installing it.
"""

import sys
from pathlib import Path

# Add the repository root (the directory containing this file) to ``sys.path``
# if it is not already present.  This mirrors the behaviour of running Python
# scripts directly from the project root.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
