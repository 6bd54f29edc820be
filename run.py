#!/usr/bin/env python3
import sys
from pathlib import Path

# src/ holds the top-level modules
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))


def main():
    """Console entry point."""
    from main import run

    run()


if __name__ == "__main__":
    main()
