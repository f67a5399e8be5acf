"""
Core Package.

The parser collaborator, the quality gate, the orchestrator and its report.
"""
