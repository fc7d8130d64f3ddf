"""Cudalis terminal output.

Modules
-------
renderer
    ``BuildRenderer`` turns triples, plans and results into Rich
    renderables, and serves as the orchestrator's progress callback.
"""
