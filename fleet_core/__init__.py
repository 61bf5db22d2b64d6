"""
Fleet position and ETA estimation core.
"""

__version__ = "0.1.0"
