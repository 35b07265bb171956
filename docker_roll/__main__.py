"""
docker-roll CLI entry point.
"""

import sys

from docker_roll.cli import main

if __name__ == "__main__":
    sys.exit(main())
