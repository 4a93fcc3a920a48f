"""Common utilities for CampusCache (HTTP, retry, URL cache, single-flight)."""
