"""Curriculum admin console: BNCC PDF ingestion and soft-delete lifecycle"""
