"""Output encoding and delivery layer.

This module encodes transformed records, compresses artifacts, and commits
them to local files, object stores, databases, or API callbacks.
"""
