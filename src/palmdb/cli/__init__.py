"""
palmdb Command-Line Interface
=============================

This package provides the ``palmdb`` command-line tool for inspecting,
extracting and rewriting Palm database files.

The tool is implemented as a Click-based CLI application.
"""

__all__ = ["pdbtool"]
