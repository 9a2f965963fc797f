"""
taskgrove - hierarchical task tracking for organizations, served over GraphQL.
"""

__version__ = "0.1.0"
