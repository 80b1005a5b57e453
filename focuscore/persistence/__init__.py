"""Record store backends and change feeds."""
