"""
Cosmic Watch backend.
Near-Earth object feed, risk scoring, watchlists and discussion rooms.
"""

__version__ = "1.0.0"
