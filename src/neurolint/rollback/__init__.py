"""
Snapshot history and restoration strategies.
"""
