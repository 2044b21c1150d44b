"""Container storage layer.

This package locks, branches, reads, and writes container object files
in a remote store. It powers the cached repositories behind the SDK.
"""
