"""
fragscore Auth - Access checks for per-match data.

This module contains:
- access: Participant-based match access policy
"""

__all__: list[str] = []
