"""Bitrise-style step that runs Carthage behind a fingerprint-checked cache."""
