"""Stable Diffusion task service - HTTP layer.

Modules
-------
main
    FastAPI application factory, lifespan handling and the ``main()`` CLI
    entry point.
router
    ``(verb, path)`` dispatch onto the submit, status, artifact and list
    operations, with separate read-only and update channels.
models
    Response envelope and transport-neutral request/response shapes.
"""
