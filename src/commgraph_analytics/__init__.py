"""Cross-user communication analytics over a Users/Conversations/Messages graph."""

__version__ = "0.1.0"
