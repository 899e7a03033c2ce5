"""
Transformation modules.

Business modules built on the transformation kernel.  Each module ships
frozen-dataclass models, ORM persistence, workflow definitions, a config
schema and a service facade that owns the transaction boundary.
"""
