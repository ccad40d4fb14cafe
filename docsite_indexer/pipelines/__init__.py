"""Indexing pipeline for documentation sites.

Scraper: discovers pages from sitemap.xml and extracts their content
Ingestion: decides what to (re)index and writes documents into the search index
"""
