"""Shared models and configuration."""
