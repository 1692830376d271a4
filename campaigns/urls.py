from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import CampaignViewSet, TemplateViewSet

app_name = "campaigns"

router = DefaultRouter()
router.register(r"templates", TemplateViewSet)
router.register(r"campaigns", CampaignViewSet)

urlpatterns = [
    path("", include(router.urls)),
]
