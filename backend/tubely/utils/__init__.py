"""
Utilities Package for the Tubely Backend Application.

Modules:
    asset_keys: Random storage key derivation from a media type and prefix
    file_validator: Media type and upload size validation
    logger: Structured logging setup and context enrichment
    process: Async subprocess execution with timeouts
"""
