"""Capture, download or reuse screenshots for every configured source."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the repository root is importable when executing from the scripts/ directory.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from screenshots.pipeline import main


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
