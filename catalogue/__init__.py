"""Crowd-edited building catalogue with a revision-tracked record store."""
