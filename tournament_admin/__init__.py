"""Tournament admin backend.

Prize distribution and wallet settlement for esports tournaments.
"""

__version__ = "1.0.0"
