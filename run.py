#!/usr/bin/env python3
"""Convenience script to run the Approval Guard CLI."""

from approval_guard.app import run


def main():
    run()

if __name__ == "__main__":
    main()
