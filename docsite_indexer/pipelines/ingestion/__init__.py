"""Change-window filtering and skip decisions for incremental runs."""
