"""
TCP Flow Monitor - passive TCP conversation tracker

Observes live traffic on one interface, keeps a running table of the local
host's TCP conversations and warns about streams of unanswered SYN segments.
"""

__version__ = "1.0.0"
__author__ = "Network Team"
