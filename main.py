#!/usr/bin/env python3
"""
Home Security Monitor - Main Application
Watches MQTT sensor readings and raises emergency alerts.
"""

import sys

from homesecurity.cli.main import main


if __name__ == "__main__":
    sys.exit(main())
