"""
Microscope Viewer: live image + analysis monitor
=================================================
Polls the microscopy server for the latest capture and its analysis,
pairs them by image id, and keeps the last 50 pairs.

Usage:
    python viewer.py [--history | --clear-history | --logout]
"""

import sys

from viewer_core.runner import main


if __name__ == "__main__":
    sys.exit(main())
