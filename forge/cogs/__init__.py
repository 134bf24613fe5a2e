"""Discord slash command extensions."""
