"""
Entry point for python -m http_observability

Usage:
    python -m http_observability [config_path]

Environment variables:
    OBSERVABILITY_CONFIG_PATH - Path to configuration file
    BACKEND_URL, OBSERVABILITY_API_KEY, ... - Overrides (see config.py)
"""
import os
import sys

from .daemon import main


def run():
    # Get config path from argument or environment
    config_path = None

    if len(sys.argv) > 1:
        config_path = sys.argv[1]
    elif os.environ.get('OBSERVABILITY_CONFIG_PATH'):
        config_path = os.environ['OBSERVABILITY_CONFIG_PATH']

    main(config_path)


if __name__ == "__main__":
    run()
