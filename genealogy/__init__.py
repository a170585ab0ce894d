"""Genealogy storage, places and the place hierarchy list."""
