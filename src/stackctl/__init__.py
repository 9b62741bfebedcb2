"""stackctl — health-gated orchestration for three-tier container stacks."""

__version__ = "0.4.0"
