"""
Chain File Schema Package

Provides Pydantic models for validating chain file documents
before a chain is built from them.

Usage:
    from fxchain.schemas import validate_chain_file

    try:
        document = validate_chain_file(data)
    except ValidationError as e:
        print(f"Validation failed: {e}")
"""

from .chain_file_schema import (
    ChainConfigSchema,
    ChainFileSchema,
    validate_chain_file,
)

__all__ = [
    'ChainConfigSchema',
    'ChainFileSchema',
    'validate_chain_file',
]
