"""Extraction and pipeline orchestration.

This module reads records from files, HTTP APIs, object stores, and
databases, and drives a pipeline config through its run states.
"""
