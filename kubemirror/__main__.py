"""Entry point for `python -m kubemirror`.

Usage:
    python -m kubemirror
"""

from __future__ import annotations

import asyncio

from kubemirror.app import main

asyncio.run(main())
