"""
Bookstore query demonstration.

Connects to a MongoDB ``books`` collection, runs a fixed sequence of CRUD
queries, aggregation pipelines and index diagnostics, and prints every result
as a labeled table.

Usage:
    python -m bookstore
"""

__version__ = '1.0.0'
