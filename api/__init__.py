"""HTTP adapter for the Taleweave turn engine."""
