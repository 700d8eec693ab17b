"""Use cases driving update sessions and stack workflows through ports."""
