"""
quorum-agent

Per-host agent for a quorum-replicated coordination service whose cluster
configuration lives in a shared blob store.
"""

__version__ = "1.0.0"
