"""
Semantic analysis of code units.
"""
