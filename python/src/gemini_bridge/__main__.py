"""Allow running as `python -m gemini_bridge`."""

from .cli import main

main()
