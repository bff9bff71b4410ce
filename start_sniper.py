#!/usr/bin/env python3
"""
Pool Sniper - listens for new Raydium pools and buys the ones that pass the gates

Usage:
    python start_sniper.py --config config/config.yml
"""

import sys

from poolsniper.app import main


if __name__ == "__main__":
    sys.exit(main())
