"""
Transform package for reading and rewriting state machine definitions.

This package provides the structural validator for Amazon States Language
trees and the interpolator that resolves placeholders and intrinsic
references before a definition is emitted.
"""

from .definition_validator import iter_states, validate_definition
from .interpolation import DefinitionInterpolator, is_intrinsic

__all__ = ["DefinitionInterpolator", "is_intrinsic", "iter_states", "validate_definition"]
