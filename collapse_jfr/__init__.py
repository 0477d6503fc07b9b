"""
Convert Java Flight Recorder recordings into collapsed stack files for
flame graph tools.
"""

__version__ = "0.1.0"
