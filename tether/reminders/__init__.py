"""Reminder engine (authoring, store, transports, dispatcher, Celery beat).

The dispatcher must run as a single logical instance per database; the Celery
task guards against overlapping ticks with an optional Redis lock.
"""
