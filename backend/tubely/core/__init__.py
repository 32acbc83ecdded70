"""
Core infrastructure for the Tubely backend application.

- auth: Bearer token authentication with local HS256 JWTs
- database: MongoDB async client with Motor driver and connection pooling
"""
