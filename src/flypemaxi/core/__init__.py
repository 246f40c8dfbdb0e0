"""
FLYPE-MAXI Core Module

Core functionality for FLYPE-MAXI vaults including:
- The chain world contracts are registered on
- Token, proxy and access control primitives
- Concentrated liquidity pools and their math
- Vault implementation and factory
- Configuration and structured logging
"""

__all__ = []
