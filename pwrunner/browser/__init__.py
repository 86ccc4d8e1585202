"""
Browser layer for pwrunner.

Provides Playwright-based building blocks for job execution:
- One isolated browser session (process + page) per job
- Step interpretation: navigate, click, fill, wait, screenshot
- Guaranteed session teardown on every exit path
"""
