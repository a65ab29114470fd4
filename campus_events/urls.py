from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenRefreshView
from eventreg.views import UsernameOrEmailTokenObtainPairView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/token/', UsernameOrEmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/', include('eventreg.urls')),
]
