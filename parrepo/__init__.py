"""
Local, file-tree based artifact repository.

This package is responsible for:
* Placing versioned artifacts in a platform / runtime-version directory matrix.
* Keeping the provider, executable and alias indices consistent with that matrix.
* Persisting each index as a compressed sqlite database in the repository root.
* Checking and upgrading the repository format stamp on open.
"""
