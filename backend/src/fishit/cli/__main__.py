"""CLI entry point for fishit.cli module.

Enables execution via: python -m fishit.cli (runs one retry sweep)
"""

from fishit.cli.retry_sweep import main

if __name__ == "__main__":
    raise SystemExit(main())
