"""Face detector capabilities and adapters."""
