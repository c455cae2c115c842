"""
Target writers for pipeline output (append and upsert-by-key per target type).
"""
