"""Channel Archive.

Exports Discord channels with DiscordChatExporter, stores their messages,
indexes them for semantic search and tracks every job in a human-readable
status ledger.

Usage:
    python -m channel_archive lurk --channel-id X     # export -> ingest -> index
    python -m channel_archive archive --channel-id X  # export -> upload -> relocate
    python -m channel_archive status                  # ledger activity
    python -m channel_archive serve                   # HTTP trigger
"""

__version__ = "0.1.0"
