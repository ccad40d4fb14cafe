"""Sitemap crawling and page content extraction."""
