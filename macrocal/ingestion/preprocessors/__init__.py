"""Preprocessors: period normalization and upload file parsing."""
