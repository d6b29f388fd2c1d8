"""Hospitalization application.

Holds the legacy hospitalization and billing account models and the
account assurance workflow that links an episode to the patient's active
billing account.
"""
