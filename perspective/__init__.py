"""Perspective: a blog publishing front-end over a hosted backend."""
