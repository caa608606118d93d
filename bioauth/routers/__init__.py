from .admin import admin_router
from .ceremony import ceremony_router, validation_error_handler
