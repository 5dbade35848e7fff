"""Core building blocks: configuration, logging, exceptions and concurrency helpers."""
