"""
Notes backend package: task lifecycle, completion archive and history analytics.

The ASGI app lives in src.notes_api.main; create_app builds isolated instances.
"""
