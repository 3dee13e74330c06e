"""mdvault: link-consistent rename and export for markdown vaults."""

__version__ = "0.3.0"
