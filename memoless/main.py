#!/usr/bin/env python3
"""
Memoless engine
Entry point for ``python -m memoless.main``
"""
from .cli import main

if __name__ == "__main__":
    main()
