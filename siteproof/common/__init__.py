"""Small helpers shared across siteproof packages."""
