"""Partitioned store layer.

This package writes and reads immutable sorted files, keeps table
catalogs, and adopts staged files into table partitions.
"""
