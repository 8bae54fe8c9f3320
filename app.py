"""
Process entry point for running the monitoring engine without installing the
console script:

    python app.py
"""

import sys

from perftrack.app import main

if __name__ == '__main__':
    sys.exit(main())
