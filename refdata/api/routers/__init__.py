"""
FastAPI routers for the reference-data API.

``imports`` carries the bulk upload endpoints; ``records`` the read and
maintenance endpoints. Both register one set of routes per record type.
"""
