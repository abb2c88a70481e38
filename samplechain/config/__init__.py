"""
Configuration: generation tunables resolved from the environment.
"""

from .parameters import ParameterResolver, ResolvedParameters, resolve_parameters

__all__ = ["ParameterResolver", "ResolvedParameters", "resolve_parameters"]
