"""Step pipeline execution.

This module runs ordered write steps with abort-on-first-failure
semantics and maps declarative change plans onto those steps.
"""
