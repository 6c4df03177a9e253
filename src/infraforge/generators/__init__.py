"""
Deterministic artifact generation.

Values, desired continuous-deployment objects, manifests and GitOps file
trees. Nothing in this package performs I/O.
"""
