"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its models, service functions
and JSON blueprint, while reusing platform primitives (auth gate, audit,
storage, DB session).
"""
