#!/usr/bin/env python3
"""Development runner"""
from tierbackup.cli import main

if __name__ == '__main__':
    # Same as the installed `backup` command
    main()
