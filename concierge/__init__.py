"""Agent concierge: conversational advisor for a real-estate vendor marketplace."""
