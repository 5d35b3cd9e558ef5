"""Pytest configuration shared by all test suites"""

import os
import sys
from pathlib import Path

# Add project root to path for vectorlab imports (without pip install -e)
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# vectorlab.main configures logging on import; keep tests off the log directory
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")
