"""
Ingestion — markdown normalisation, chunking, embedding and indexing.

This module is responsible for the ETL-like pipeline that converts a
directory of markdown documents into embedded chunks stored in one
vector-store collection per source.
"""
