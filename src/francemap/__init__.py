"""Thematic map rendering for French administrative geography."""
