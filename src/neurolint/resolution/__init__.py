"""
Conflict resolution strategies.
"""
