"""Clinic application for the careline backend.

Holds the weekly-availability slot engine, the walk-in queue engine and
the models, services and API views that persist and expose them.
"""
