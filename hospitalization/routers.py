"""
URL mappings for the hospitalization API.

Paths mirror the admission front-end endpoints; trailing slashes are
deliberately omitted.
"""
from django.urls import path

from .views import health
from .views.assurance import assure_hospitalization_account

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),
    path(
        'api/hospitaliza/<str:episode_id>/asegurar-cuenta',
        assure_hospitalization_account,
        name='hospitalization_assure_account',
    ),
]
