"""
URL configuration for the audiobot project.

Only the Telegram webhook is exposed.
"""

from django.urls import path

from converter.views import webhook_view

urlpatterns = [
    path('webhook/', webhook_view, name='webhook'),
    path('api/webhook', webhook_view),
]
