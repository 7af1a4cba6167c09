from rest_framework.routers import DefaultRouter
from .views import ConnectionViewSet, EntanglementViewSet

router = DefaultRouter()
router.register(r'connections', ConnectionViewSet, basename='connection')
router.register(r'entanglements', EntanglementViewSet, basename='entanglement')

urlpatterns = router.urls
