#!/usr/bin/env python3
"""
Entry point for the live voice assistant.

    python main.py run       # interactive session
    python main.py config    # show configuration
"""

from live_assistant.main import main


if __name__ == '__main__':
    main()
