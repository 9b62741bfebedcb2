"""Domain layer — pure models and rules with no I/O.

Domain modules must never import from infrastructure, services, or commands.
"""
