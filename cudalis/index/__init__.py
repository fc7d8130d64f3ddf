"""Catalog import from PyTorch wheel indexes."""
