"""
ratecache - CBR exchange rates served through a local read-through cache.
"""

__version__ = "1.0.0"
