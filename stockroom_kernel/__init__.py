"""
stockroom_kernel -- the lowest layer of the stockroom application.

Holds the typed exception hierarchy, structured logging, the injectable
clock, the role and entity value types, and the SQLAlchemy persistence
base.  Nothing in this package imports from ``stockroom_config``,
``stockroom_services`` or ``stockroom_modules``.
"""
