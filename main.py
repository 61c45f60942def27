#!/usr/bin/env python3
"""
Main entry point for the Twitch EventSub webhook listener
"""

import sys

from twitch_eventsub.main import main

if __name__ == "__main__":
    sys.exit(main())
