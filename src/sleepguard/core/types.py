"""Shared type aliases used across sleepguard."""

# Decrypted cleartext: integers for euintN, bool for ebool
ClearValue = int | bool
