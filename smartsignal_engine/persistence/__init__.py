"""Trade and event journal persistence."""
