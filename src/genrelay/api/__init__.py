"""genrelay - FastAPI REST API layer.

Modules
-------
main
    Application factory, route handlers, error handlers, and the ``main()``
    CLI entry point.
models
    Pydantic models for request and response bodies.
"""
