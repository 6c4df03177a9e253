"""Continuous-deployment objects, projection and operator installation."""
