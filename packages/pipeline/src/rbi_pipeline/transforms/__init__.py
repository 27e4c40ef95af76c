"""Row normalization and hierarchy candidate building for PSGC extracts."""
