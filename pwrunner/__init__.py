"""
pwrunner - Playwright job runner.

Pulls browser-automation jobs from a queue, executes their steps against a
headless browser and reports a structured result for every job.
"""
__version__ = "0.1.0"
