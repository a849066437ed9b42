"""
Ceremony Scheduler - contribution coordination for multi-party ceremonies.

Assigns the exclusive computation slot of each circuit to one participant
at a time, estimates waiting times for everyone else, evicts stalled
contributors and hands the slot over to the next participant in line.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
