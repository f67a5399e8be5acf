"""
Change tracking and cross-pass conflict detection.
"""
