"""
Backend package for the iSIF service.

This package provides a FastAPI application, the SIF delivery worker and the
document, storage and queue abstractions they share with the Firebase
Functions entry points in main.py.
"""
