from django.urls import path, include
from rest_framework.routers import SimpleRouter

from discounts.views import DiscountViewSet, AppliedDiscountViewSet

# Applied discounts first: discounts are routed at the prefix root.
router = SimpleRouter()
router.register(r'applied', AppliedDiscountViewSet, basename='applied-discount')
router.register(r'', DiscountViewSet, basename='discount')

urlpatterns = [
    path('', include(router.urls)),
]
