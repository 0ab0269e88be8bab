"""Live framing guidance."""
