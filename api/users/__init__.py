"""
User ingestion feature: records submitted by partners for the cashKuber table.
"""
