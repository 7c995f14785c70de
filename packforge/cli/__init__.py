"""Command-line interface for packforge"""
