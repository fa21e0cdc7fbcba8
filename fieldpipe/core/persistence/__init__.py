"""
Persistence — on-disk records the pipeline keeps between runs.
"""

from fieldpipe.core.persistence.artifacts import ArtifactEntry, ArtifactStore, hash_file

__all__ = ["ArtifactEntry", "ArtifactStore", "hash_file"]
