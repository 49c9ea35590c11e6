"""
Application package.

This package contains the FastAPI entrypoint (``main``) and its
submodules: ``core`` (configuration, logging, errors and the SQLite
store handle), ``schemas`` (request and response models), ``services``
(the directory components) and ``api`` (versioned routers).
"""
