"""Exam-preparation backend: question selection, scoring and results.

This package exposes the service, repository and model modules used by
the FastAPI application, plus the client-side session state machine
(`examprep.session`) and HTTP controller (`examprep.client`).
"""
