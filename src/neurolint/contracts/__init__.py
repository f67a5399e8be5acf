"""
Transformation contracts and their registry.
"""
