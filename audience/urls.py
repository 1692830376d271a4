from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ContactListViewSet, ContactViewSet, SuppressionViewSet

app_name = "audience"

router = DefaultRouter()
router.register(r"contacts", ContactViewSet)
router.register(r"lists", ContactListViewSet)
router.register(r"suppressions", SuppressionViewSet)

urlpatterns = [
    path("", include(router.urls)),
]
