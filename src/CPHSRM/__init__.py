"""Canonical phase-type (CF1) distributions and software reliability models."""
