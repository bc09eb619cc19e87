"""
CRUD operations package.

Database access for user identity records, kept out of the endpoints.
"""
