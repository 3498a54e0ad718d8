"""
fragscore Infrastructure - System infrastructure components.

This module contains:
- cache: Match-scoped memoisation of aggregate computations
- database: SQLite-backed store of match participants and event rows
"""

__all__: list[str] = []
