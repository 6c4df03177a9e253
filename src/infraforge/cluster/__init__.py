"""Cluster API and Helm collaborators."""
