"""
Backend package for the planning-poker service.

Provides Firestore-backed repositories for projects and epics, the sprint
count reconciliation routine, and a FastAPI application exposing them.
"""
