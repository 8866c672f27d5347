"""Fanfic Downloader: fetch fan-fiction works and render them as PDF or EPUB."""
