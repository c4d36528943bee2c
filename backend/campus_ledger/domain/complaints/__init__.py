"""Complaint board: students report problems, club admins triage them."""
