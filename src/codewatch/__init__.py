"""CodeWatch - debounced, coalesced filesystem change batches for reindexing."""

__version__ = "0.1.0"
