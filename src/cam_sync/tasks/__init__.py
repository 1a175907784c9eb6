"""Asynchronous task engine for long-running inventory jobs.

Tasks are persisted before they are queued, then drained by a fixed pool of
worker threads. Each task type is bound to one executor; executors return a
typed result and never touch task status, which is owned by the queue.
"""
