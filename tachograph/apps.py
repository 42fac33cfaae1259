"""
Tachograph app configuration.
"""

from django.apps import AppConfig


class TachographConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tachograph'
    verbose_name = 'Tachograph Compliance'
