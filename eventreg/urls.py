from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'branches', views.BranchViewSet, basename='branch')
router.register(r'venues', views.VenueViewSet, basename='venue')
router.register(r'events', views.EventViewSet, basename='event')
router.register(r'registrations', views.RegistrationViewSet, basename='registration')

urlpatterns = [
    path('', include(router.urls)),
    path('users/register/', views.register_user, name='register'),
    path('users/login/', views.UsernameOrEmailTokenObtainPairView.as_view(), name='login'),
    path('users/<int:user_id>/', views.user_detail, name='user-detail'),
    path('health/', views.health_check, name='health_check'),
]
