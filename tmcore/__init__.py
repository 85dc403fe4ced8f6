"""
tmcore - Translation Memory Engine

Translation units and terminology per project, multi-strategy matching,
terminology consistency, chunk linking and sentence alignment.

Usage:
    from tmcore.engine import get_engine

    engine = get_engine()
"""

__version__ = "0.1.0"
