#!/usr/bin/env python3

from ibc_relayer.cli import run

if __name__ == "__main__":
    run()
