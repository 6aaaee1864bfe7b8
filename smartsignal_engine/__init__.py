"""Smart-money signal engine for crypto futures."""
