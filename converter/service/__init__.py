"""
Service layer for video to audio conversion.

This package holds the conversion pipeline itself, independent of Telegram
updates and of Django models. It is used by:
- The huey task that handles bot updates (converter/tasks.py)
- The CLI management command (management/commands/convert.py)
"""
