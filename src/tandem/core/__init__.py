"""
Core shared components for TANDEM.
"""

from .indexing import (
    element_names,
    flatten_draws,
    parse_parameter_name,
    select_parameter,
)

__all__ = [
    "element_names",
    "flatten_draws",
    "parse_parameter_name",
    "select_parameter",
]
