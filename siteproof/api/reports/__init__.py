"""Report queue API resources."""
