"""Prune stale image manifests from a container registry."""
