"""
Compiler core: naming, the shared template accumulator and the phase contract.
"""

from .context import CompilationContext, CompilationPhase, RoleReference
from .naming import NamingResolver, ResourceKind
from .template import CompiledTemplate, NamingContext

__all__ = [
    "CompilationContext",
    "CompilationPhase",
    "CompiledTemplate",
    "NamingContext",
    "NamingResolver",
    "ResourceKind",
    "RoleReference",
]
