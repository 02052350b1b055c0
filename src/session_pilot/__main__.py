"""Allow running session-pilot with ``python -m session_pilot``."""

from .cli.main import main

if __name__ == "__main__":
    main()
