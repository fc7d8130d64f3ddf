"""Cudalis CLI — Typer-based command-line interface.

Provides the ``cudalis`` command with subcommands for resolving a
(Python, PyTorch, CUDA) triple, previewing its build plan, building the
image, and inspecting or importing compatibility catalogs.

All output uses Rich for formatted terminal display.
"""
