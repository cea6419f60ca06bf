"""Synchronize a local directory into an S3 bucket."""
