"""E-exhibition gallery: admin-curated showcase items, each with one image."""
