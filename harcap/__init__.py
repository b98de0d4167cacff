"""
harcap - page load capture under simulated network conditions.

Records a HAR-like network activity log of a page load while delaying or
blocking requests that match user-supplied rules, optionally taking
periodic screenshots, and lets plugins hook into every stage of the run.
"""

__version__ = "0.4.0"
