"""Repository layer: subscription SQL helpers (SQLite).

Functions take an already-open connection; transaction scope belongs to the caller.
"""
from __future__ import annotations
