"""Enforcement hooks that gate edits, shell commands, and commits."""
