"""FileMarket order lifecycle and royalty settlement service."""

__version__ = "0.1.0"
