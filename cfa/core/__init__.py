"""CFA core domain: auction engine, games, scoring, substitutions, storage."""
