#!/usr/bin/env python3
"""
Wrapper script for dual-fisheye stitching.
Makes it easier to run without the -m flag.

Usage:
    python dualfish_stitch.py dual_fisheye.jpg -o panorama.png
"""

import sys
from dualfish.stitch_cli import main

if __name__ == '__main__':
    sys.exit(main())
