"""
Service layer.

Each service encapsulates the business logic for one domain and talks
to SQLite through ``core.db``.  Endpoints stay thin and only translate
service errors into HTTP responses.
"""
