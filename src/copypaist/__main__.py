"""Allow `python -m copypaist` to launch the assistant."""

import asyncio
import sys

from copypaist.main import main

sys.exit(asyncio.run(main()))
