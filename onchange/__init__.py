"""
OnChange.

Run a shell command when watched files change, with debounce and
throttle control over how often it runs.
Requires Python 3.11+.
"""

__version__ = "0.1.0"
