"""callplane - control plane for brokered real-time call sessions."""

__version__ = "1.0.0"
