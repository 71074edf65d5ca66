"""
Pytest configuration for nested_tree tests.

Puts src/ and this directory on sys.path so tests run from a plain checkout
and can import the shared tree_fixtures helpers.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))
