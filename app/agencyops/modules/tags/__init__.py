"""Colour-coded tags used to label records in the admin UI."""
