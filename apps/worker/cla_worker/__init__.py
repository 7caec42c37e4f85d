"""CLA bot background worker."""
