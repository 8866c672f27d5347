"""PDF and EPUB rendering."""
