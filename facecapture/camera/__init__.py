"""Camera capability, session ownership and constraint negotiation."""
