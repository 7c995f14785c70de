#!/usr/bin/env python3
"""
Main entry point for packforge.
"""
from .cli.build_cli import cli


def main():
    """Main function."""
    cli(prog_name="packforge")


if __name__ == "__main__":
    main()
