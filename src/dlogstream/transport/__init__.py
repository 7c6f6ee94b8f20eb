"""Capture transports: local sdb subprocess and remote SSH shell."""
