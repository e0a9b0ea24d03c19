"""
Credential generation and dependency bundle validation.
"""
