"""
Entry Point Script (Bootstrap)
==============================
Development runner for the headless simulator.

Why is this file needed?
------------------------
1. It is located outside the 'src' package to act as a convenient runner.
2. It modifies 'sys.path' so 'metricsearch' resolves without installing it.

Usage:
    $ python run.py --method MTREE --operation INSERT --query 3 4 --manual
"""
import os
import sys

current_dir: str = os.path.dirname(os.path.abspath(__file__))
src_path: str = os.path.join(current_dir, 'src')
sys.path.insert(0, src_path)

from metricsearch.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
