"""Functional test harness for the visualize editor of a browser analytics app."""

__version__ = '0.1.0'
