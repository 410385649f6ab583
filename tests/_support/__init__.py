"""
Test support utilities for holdfast tests.

Helpers that are not fixtures but are shared across test files: the sample
element variants and small record-building helpers.
"""
