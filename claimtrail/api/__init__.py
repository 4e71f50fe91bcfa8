"""claimtrail API

FastAPI application, ORM layer and request/response models.
Build the app with ``claimtrail.api.main.create_app()``.
"""
