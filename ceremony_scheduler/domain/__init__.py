"""Domain layer for the ceremony scheduler.

Pure models, domain errors and side-effect free domain services.
Nothing in this package performs I/O.
"""
