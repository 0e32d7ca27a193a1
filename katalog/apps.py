from django.apps import AppConfig


class KatalogConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'katalog'
    verbose_name = 'Katalog Handphone'
