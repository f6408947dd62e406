"""I/O adapter package.

Boundary code for reading the process environment and resolving the
filesystem locations (service root, uploads directory, TLS material) the
server works against.

Keep this package free of request handling; it should remain an interface layer.
"""
