"""ClassTest - school testing platform backend."""
