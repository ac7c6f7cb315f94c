"""Utility modules for pocketsql."""

from pocketsql.utils.serialization import NULL_SENTINEL, cell_to_text, dumps

__all__ = [
    "NULL_SENTINEL",
    "cell_to_text",
    "dumps",
]
