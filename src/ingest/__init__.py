"""Bulk load ingestion pipeline.

This package reads the delimited extract, decodes and projects records
into cells, and orchestrates the stages that end in a bulk commit.
"""
