#!/usr/bin/env python3
"""Create an empty SQLite warehouse with the correct schema (no dummy data)."""

import argparse
from pathlib import Path

from channelops.db import init_schema


def init_db(db_path: str) -> None:
    p = Path(db_path)
    if p.exists():
        p.unlink()
    init_schema(db_path)
    print(f"Empty database created at {db_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--sqlite-path", default="data/dummy/channelops_demo.sqlite")
    args = parser.parse_args()
    init_db(args.sqlite_path)
