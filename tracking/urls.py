# tracking/urls.py
from django.urls import path
from . import views

app_name = "tracking"

urlpatterns = [
    path("c/<str:token>", views.click, name="click"),
    path("t/u/<str:token>", views.unsubscribe, name="unsubscribe"),
    path("webhooks/delivery/", views.delivery_webhook, name="delivery_webhook"),
]
